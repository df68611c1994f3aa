from .extract_slides import main

main()
