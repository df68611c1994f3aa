import random
import unittest

from slide_segmenter.config import AnalysisConfig
from slide_segmenter.errors import ConfigError, DetectorInvariantError
from slide_segmenter.models import Frame, Segment, SegmentKind
from slide_segmenter.segment_detector import (
    DetectorState,
    SegmentDetector,
    commit,
    detect_segments,
    flush,
    step,
)
from tests._images import make_frames, scene

S = SegmentKind.STATIC
M = SegmentKind.MOVING


def kinds(segments):
    return [segment.kind for segment in segments]


def indices(segments):
    return [segment.frame_indices for segment in segments]


class TransitionTests(unittest.TestCase):
    def test_first_frame_opens_static_segment(self):
        frame = make_frames("A")[0]
        state = step(DetectorState(), frame)
        self.assertIs(state.current.kind, S)
        self.assertEqual(state.current.frame_indices, (0,))
        self.assertEqual(state.anchor_hashes, tuple(frame.grid_hashes))
        self.assertEqual(state.segments, ())

    def test_grid_hashes_are_memoized_on_frame(self):
        frame = make_frames("A")[0]
        step(DetectorState(), frame)
        self.assertEqual(len(frame.grid_hashes), 16)

    def test_matching_frames_extend_static_segment(self):
        segments = detect_segments(make_frames("AAAA"))
        self.assertEqual(kinds(segments), [S])
        segment = segments[0]
        self.assertEqual(segment.frame_indices, (0, 1, 2, 3))
        self.assertEqual((segment.start_time, segment.end_time), (0.0, 3.0))
        self.assertEqual(segment.first_capture.index, 0)
        self.assertEqual(segment.last_capture.index, 3)
        self.assertFalse(segment.last_is_first)

    def test_single_frame_static_segment_keeps_same_capture(self):
        segments = detect_segments(make_frames("A"))
        self.assertEqual(len(segments), 1)
        self.assertTrue(segments[0].last_is_first)
        self.assertIs(segments[0].first_capture, segments[0].last_capture)
        self.assertEqual(segments[0].duration, 0)

    def test_mismatch_commits_static_and_seeds_tentative(self):
        frames = make_frames("AAB")
        state = DetectorState()
        for frame in frames:
            state = step(state, frame)
        self.assertEqual(kinds(state.segments), [S])
        self.assertIs(state.current.kind, M)
        self.assertEqual(state.current.frame_indices, (2,))
        self.assertIsNone(state.anchor_hashes)
        self.assertEqual([f.index for f in state.tentative], [2])
        self.assertEqual(state.tentative_anchor_hashes, tuple(frames[2].grid_hashes))

    def test_noise_resets_tentative_buffer(self):
        frames = make_frames("AABCC")
        state = DetectorState()
        for frame in frames:
            state = step(state, frame)
        self.assertEqual(state.current.frame_indices, (2, 3, 4))
        self.assertEqual([f.index for f in state.tentative], [3, 4])
        self.assertEqual(state.tentative_anchor_hashes, tuple(frames[3].grid_hashes))

    def test_confirmed_run_is_stripped_from_moving_segment(self):
        segments = detect_segments(make_frames("AAABCDDD"))
        self.assertEqual(kinds(segments), [S, M, S])
        self.assertEqual(indices(segments), [(0, 1, 2), (3, 4), (5, 6, 7)])
        moving = segments[1]
        self.assertEqual((moving.start_time, moving.end_time), (3.0, 5.0))
        static = segments[2]
        self.assertEqual(static.first_capture.index, 5)
        self.assertEqual(static.last_capture.index, 7)
        self.assertEqual(static.end_time, 7.0)

    def test_short_tentative_run_stays_in_moving_segment_on_flush(self):
        segments = detect_segments(make_frames("AAABCDD"))
        self.assertEqual(kinds(segments), [S, M])
        self.assertEqual(indices(segments), [(0, 1, 2), (3, 4, 5, 6)])

    def test_video_opening_in_motion_starts_with_one_frame_static(self):
        segments = detect_segments(make_frames("BCDEAAA"))
        self.assertEqual(kinds(segments), [S, M, S])
        self.assertEqual(indices(segments), [(0,), (1, 2, 3), (4, 5, 6)])

    def test_static_then_single_moving_frame(self):
        segments = detect_segments(make_frames("AB"))
        self.assertEqual(kinds(segments), [S, M])
        self.assertEqual(indices(segments), [(0,), (1,)])

    def test_partial_overlay_does_not_break_static_segment(self):
        frames = make_frames("AAAA")
        overlaid = scene("A").copy()
        overlaid[24:42, 32:56] = scene("Z")[24:42, 32:56]
        frames[2] = Frame(index=2, timestamp=2.0, image=overlaid)
        segments = detect_segments(frames)
        self.assertEqual(kinds(segments), [S])
        self.assertEqual(segments[0].frame_indices, (0, 1, 2, 3))

    def test_encoded_frames_segment_like_arrays(self):
        self.assertEqual(indices(detect_segments(make_frames("AAABBBB", encoded=True))),
                         indices(detect_segments(make_frames("AAABBBB"))))


class HysteresisTests(unittest.TestCase):
    def test_single_flash_is_absorbed_into_moving_segment(self):
        segments = detect_segments(make_frames("AAABAAA"), AnalysisConfig(min_static_frames=3))
        self.assertEqual(kinds(segments), [S, M, S])
        self.assertEqual(indices(segments), [(0, 1, 2), (3,), (4, 5, 6)])
        # The B frame never becomes a static segment of its own.
        static_frames = [i for s in segments if s.is_static for i in s.frame_indices]
        self.assertNotIn(3, static_frames)

    def test_confirmed_run_becomes_its_own_static_segment(self):
        segments = detect_segments(make_frames("AAABBBBCCC"), AnalysisConfig(min_static_frames=3))
        self.assertEqual(kinds(segments), [S, M, S, M, S])
        self.assertEqual(indices(segments), [(0, 1, 2), (3,), (4, 5, 6), (7,), (8, 9)])
        statics = [s for s in segments if s.is_static]
        self.assertEqual([s.first_capture.index for s in statics], [0, 4, 8])

    def test_hard_cut_keeps_transition_frame_as_moving(self):
        segments = detect_segments(make_frames("AABB"), AnalysisConfig(min_static_frames=2))
        self.assertEqual(kinds(segments), [S, M, S])
        self.assertEqual(indices(segments), [(0, 1), (2,), (3,)])
        self.assertEqual(segments[1].end_time, 3.0)
        self.assertEqual(segments[2].start_time, 3.0)

    def test_longer_confirmation_window(self):
        config = AnalysisConfig(min_static_frames=5)
        segments = detect_segments(make_frames("AAABBBB"), config)
        self.assertEqual(kinds(segments), [S, M])
        segments = detect_segments(make_frames("AAABBBBB"), config)
        self.assertEqual(kinds(segments), [S, M, S])


class InvariantTests(unittest.TestCase):
    PATTERNS = ["A", "AB", "ABAB", "AAABAAA", "AAABBBBCCC", "ABCDEFG",
                "AAAAABBBBBAAAAA", "ABBBBAAAAB", "AABBAABBAABB"]

    def random_patterns(self):
        rng = random.Random(1234)
        for _ in range(20):
            yield "".join(rng.choice("AAABBC") for _ in range(rng.randint(1, 25)))

    def check(self, labels):
        segments = detect_segments(make_frames(labels))
        flattened = [i for segment in segments for i in segment.frame_indices]
        self.assertEqual(flattened, list(range(len(labels))), labels)
        for left, right in zip(segments, segments[1:]):
            self.assertIsNot(left.kind, right.kind, labels)
            self.assertLessEqual(left.start_time, right.start_time, labels)
        for segment in segments:
            self.assertGreaterEqual(segment.end_time, segment.start_time, labels)
            if segment.is_static:
                self.assertIn(segment.first_capture.index, segment.frame_indices)
                self.assertIn(segment.last_capture.index, segment.frame_indices)

    def test_partition_and_alternation(self):
        for labels in self.PATTERNS:
            self.check(labels)
        for labels in self.random_patterns():
            self.check(labels)

    def test_deterministic(self):
        first = detect_segments(make_frames("AAABBBBCCCABAAA"))
        second = detect_segments(make_frames("AAABBBBCCCABAAA"))
        self.assertEqual(
            [(s.kind, s.frame_indices, s.start_time, s.end_time) for s in first],
            [(s.kind, s.frame_indices, s.start_time, s.end_time) for s in second],
        )

    def test_step_does_not_modify_input_state(self):
        frames = make_frames("AAAB")
        state = DetectorState()
        for frame in frames[:3]:
            state = step(state, frame)
        before = (state.segments, state.current.frame_indices, state.current.end_time)
        after = step(state, frames[3])
        self.assertEqual((state.segments, state.current.frame_indices, state.current.end_time),
                         before)
        self.assertIs(state.current.kind, S)
        self.assertIs(after.current.kind, M)


class CommitTests(unittest.TestCase):
    def test_same_kind_segments_merge(self):
        frames = make_frames("AB")
        first = Segment(S, 0.0, 0.0, (0,), frames[0], frames[0], True)
        second = Segment(S, 1.0, 1.0, (1,), frames[1], frames[1], True)
        merged = commit(commit((), first), second)
        self.assertEqual(len(merged), 1)
        self.assertEqual(merged[0].frame_indices, (0, 1))
        self.assertEqual(merged[0].end_time, 1.0)
        self.assertIs(merged[0].last_capture, frames[1])
        self.assertFalse(merged[0].last_is_first)
        # The committed input segment is not modified.
        self.assertEqual(first.frame_indices, (0,))

    def test_different_kinds_append(self):
        result = commit(commit((), Segment(S, 0.0, 0.0, (0,))), Segment(M, 1.0, 1.0, (1,)))
        self.assertEqual(kinds(result), [S, M])

    def test_empty_segments_are_dropped(self):
        self.assertEqual(commit((), Segment(M, 0.0, 0.0, ())), ())
        self.assertEqual(commit((), None), ())

    def test_flush_commits_current(self):
        state = step(DetectorState(), make_frames("A")[0])
        flushed = flush(state)
        self.assertIsNone(flushed.current)
        self.assertEqual(len(flushed.segments), 1)


class SegmentDetectorTests(unittest.TestCase):
    def test_process_and_finalize(self):
        detector = SegmentDetector()
        for frame in make_frames("AAAB"):
            detector.process_frame(frame)
        self.assertEqual(kinds(detector.segments), [S])
        self.assertEqual(kinds(detector.finalize()), [S, M])
        self.assertEqual(kinds(detector.finalize()), [S, M])

    def test_process_after_finalize_fails(self):
        detector = SegmentDetector()
        detector.finalize()
        with self.assertRaises(DetectorInvariantError):
            detector.process_frame(make_frames("A")[0])

    def test_grid_too_fine_aborts(self):
        detector = SegmentDetector(AnalysisConfig(grid_cols=100, grid_rows=100))
        with self.assertRaises(ConfigError):
            detector.process_frame(make_frames("A")[0])


if __name__ == "__main__":
    unittest.main()
