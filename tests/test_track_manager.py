import threading

import numpy as np
import pytest

from trackfx.core.geometry import BoundingBox, Origin, Space
from trackfx.errors import ObjectNotFound
from trackfx.tracking.base import Track, TrackerObservation, TrackState
from trackfx.tracking.manager import TrackManager

FRAME = np.zeros((32, 32, 3), dtype=np.uint8)


def tracker_box(x=0.25, y=0.25, w=0.25, h=0.25):
    return BoundingBox(x, y, w, h, Space.NORMALIZED, Origin.BOTTOM_LEFT)


class ScriptedTracker:
    """Replays a list of confidences; ``None`` entries mean the tracker lost the object."""

    def __init__(self, confidences=(), accept=True):
        self.confidences = list(confidences)
        self.accept = accept
        self.box = None
        self.updates = 0

    def init(self, frame, box):
        self.box = box
        return self.accept

    def update(self, frame):
        self.updates += 1
        confidence = self.confidences.pop(0) if self.confidences else 1.0
        if confidence is None:
            return None
        return TrackerObservation(self.box, confidence)


def manager_with(*scripts, **kwargs):
    trackers = [ScriptedTracker(script) for script in scripts]
    created = iter(trackers)
    return TrackManager(lambda: next(created), **kwargs), trackers


def test_spawn_assigns_unique_ids():
    manager, _ = manager_with((), ())
    a = manager.spawn(FRAME, tracker_box(), "person", 0.9, 0)
    b = manager.spawn(FRAME, tracker_box(0.6), "person", 0.8, 0)
    assert a.object_id != b.object_id
    assert len(manager) == 2
    assert manager.get(a.object_id) is a
    assert a.created_frame == 0


def test_spawn_keeps_explicit_id():
    manager, _ = manager_with(())
    track = manager.spawn(FRAME, tracker_box(), "selected", 1.0, 4, object_id="obj-1")
    assert track.object_id == "obj-1"


def test_spawn_rejected_by_tracker():
    manager = TrackManager(lambda: ScriptedTracker(accept=False))
    assert manager.spawn(FRAME, tracker_box(), "person", 0.9, 0) is None
    assert len(manager) == 0


def test_spawn_rejects_empty_box():
    manager = TrackManager(ScriptedTracker)
    assert manager.spawn(FRAME, tracker_box(w=0), "person", 0.9, 0) is None


def test_get_unknown_id():
    manager = TrackManager(ScriptedTracker)
    with pytest.raises(ObjectNotFound):
        manager.get("missing")


def test_low_confidence_loses_track():
    manager, _ = manager_with((0.9, 0.2))
    track = manager.spawn(FRAME, tracker_box(), "person", 0.9, 0)
    assert [t for t, _ in manager.advance(FRAME, 0)] == [track]
    assert manager.advance(FRAME, 1) == []
    assert track.state == TrackState.LOST
    assert len(manager) == 0
    # Lost tracks never come back.
    assert manager.advance(FRAME, 2) == []


def test_tracker_failure_counts_as_miss():
    manager, _ = manager_with((None,))
    manager.spawn(FRAME, tracker_box(), "person", 0.9, 0)
    assert manager.advance(FRAME, 0) == []
    assert len(manager) == 0


def test_confidence_at_threshold_is_kept():
    manager, _ = manager_with((0.3,))
    manager.spawn(FRAME, tracker_box(), "person", 0.9, 0)
    assert len(manager.advance(FRAME, 0)) == 1


def test_max_missed_frames_tolerates_short_gaps():
    manager, _ = manager_with((0.1, 0.9, 0.1, 0.1), max_missed_frames=2)
    track = manager.spawn(FRAME, tracker_box(), "person", 0.9, 0)
    assert manager.advance(FRAME, 0) == []
    assert track.frames_since_update == 1
    assert len(manager.advance(FRAME, 1)) == 1
    assert track.frames_since_update == 0
    manager.advance(FRAME, 2)
    manager.advance(FRAME, 3)
    assert not track.is_active


def test_claim_reanchors_overlapping_track():
    manager, trackers = manager_with((), ())
    track = manager.spawn(FRAME, tracker_box(), "person", 0.9, 0)
    claimed = manager.claim(FRAME, tracker_box(0.26), 0.8)
    assert claimed is track
    assert track.tracker is trackers[1]
    assert track.current_box == tracker_box(0.26)
    assert track.last_confidence == 0.8
    assert len(manager) == 1


def test_claim_ignores_distant_and_excluded_tracks():
    manager, _ = manager_with((), ())
    track = manager.spawn(FRAME, tracker_box(), "person", 0.9, 0)
    assert manager.claim(FRAME, tracker_box(0.7), 0.8) is None
    assert manager.claim(FRAME, tracker_box(), 0.8, exclude={track.object_id}) is None


def test_parallel_advance_keeps_creation_order():
    threads = set()

    class RecordingTracker(ScriptedTracker):
        def update(self, frame):
            threads.add(threading.get_ident())
            return super().update(frame)

    manager = TrackManager(RecordingTracker, workers=4)
    tracks = [
        manager.spawn(FRAME, tracker_box(0.1 * i, 0.1, 0.05, 0.05), "person", 0.9, 0)
        for i in range(8)
    ]
    advanced = manager.advance(FRAME, 0)
    assert [t for t, _ in advanced] == tracks
    manager.close()
    assert len(manager) == 0
    assert all(t.state == TrackState.LOST for t in tracks)


def test_track_mark_missed():
    track = Track("id", "person", tracker_box(), 0.9, ScriptedTracker())
    assert not track.mark_missed(2)
    assert track.mark_missed(2)
    assert track.state == TrackState.LOST
