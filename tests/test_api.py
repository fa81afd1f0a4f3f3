import os
import threading
from unittest.mock import patch

import numpy as np
import pytest

from conftest import FakeDetector, RecordingWriter, make_detection, textured_frame
from trackfx.api import ProcessVideoOptions, VideoObjectTracker
from trackfx.core.coords import VideoTransform
from trackfx.core.geometry import BoundingBox, Space
from trackfx.core.io import ArrayFrameSource, load_image, save_image
from trackfx.errors import (
    InvalidInput,
    ModelLoadError,
    ObjectNotFound,
    ProcessingCancelled,
)
from trackfx.pipeline.results import ResultSource

EXPECTED_BOX = {"x": 16.0, "y": 16.0, "width": 16.0, "height": 16.0}


@pytest.fixture
def api(tmp_path):
    tracker = VideoObjectTracker(work_dir=str(tmp_path / "work"))
    yield tracker
    tracker.close()


@pytest.fixture
def loaded_api(api, fake_detector):
    api.detector = fake_detector
    return api


def test_resolution_is_orientation_corrected(api):
    source = ArrayFrameSource(
        [np.zeros((1080, 1920, 3), dtype=np.uint8)],
        transform=VideoTransform(0, 1, -1, 0, 1080, 0),
    )
    assert api.get_video_resolution(source) == {"width": 1080, "height": 1920}


def test_missing_video_is_invalid_input(api, tmp_path):
    with pytest.raises(InvalidInput):
        api.get_video_resolution(str(tmp_path / "missing.mp4"))


def test_detection_requires_model(api, static_source):
    assert not api.detector.is_loaded
    with pytest.raises(ModelLoadError):
        api.detect_objects_in_frame(static_source, 0)
    with pytest.raises(ModelLoadError):
        api.detect_and_track_objects(static_source)


def test_load_model_failure_propagates(api):
    with pytest.raises(ModelLoadError):
        api.load_model("/nonexistent/model.torchscript")


def test_available_classes_default_to_coco(api):
    classes = api.available_classes()
    assert len(classes) == 80
    assert classes[0] == "person"


def test_select_and_track_object(api, static_source):
    object_id = api.select_object(static_source, 2, {"x": 16, "y": 16, "width": 16, "height": 16})
    results = api.track_object(static_source, object_id)
    assert [r.frame_index for r in results] == list(range(2, 10))
    assert {r.object_id for r in results} == {object_id}
    assert results[-1].bounding_box.to_dict() == pytest.approx(EXPECTED_BOX)


def test_select_object_scales_display_boxes(api, static_source):
    object_id = api.select_object(static_source, 0, (4, 4, 4, 4), display_size=(16, 16))
    results = api.track_object(static_source, object_id)
    assert results[0].bounding_box.to_dict() == pytest.approx(EXPECTED_BOX)


@pytest.mark.parametrize(
    "frame_index, box",
    [
        (10, (0, 0, 10, 10)),
        (-1, (0, 0, 10, 10)),
        (0, (100, 100, 10, 10)),
        (0, (0, 0, 0, 10)),
        (0, {"x": 1, "y": 2}),
        (0, BoundingBox(0.1, 0.1, 0.2, 0.2)),
    ],
)
def test_select_object_rejects_bad_input(api, static_source, frame_index, box):
    with pytest.raises(InvalidInput):
        api.select_object(static_source, frame_index, box)


def test_unknown_object_id(api, static_source):
    with pytest.raises(ObjectNotFound):
        api.track_object(static_source, "does-not-exist")
    with pytest.raises(ObjectNotFound):
        api.generate_object_preview(static_source, "does-not-exist")


def test_detect_objects_in_frame(loaded_api, static_source):
    detections = loaded_api.detect_objects_in_frame(static_source, 4)
    assert len(detections) == 1
    assert detections[0].bounding_box.space == Space.PIXEL
    assert detections[0].bounding_box.to_dict() == EXPECTED_BOX
    assert detections[0].frame_index == 4
    assert detections[0].time == pytest.approx(0.4)


def test_detect_objects_in_video_samples_one_per_second(loaded_api, fake_detector):
    source = ArrayFrameSource([textured_frame()] * 90, fps=30.0)
    detections = loaded_api.detect_objects_in_video(source, max_frames=30)
    assert [d.frame_index for d in detections] == [0, 30, 60]
    assert fake_detector.calls == 3


def test_detect_objects_in_video_respects_max_frames(loaded_api):
    source = ArrayFrameSource([textured_frame()] * 300, fps=10.0)
    detections = loaded_api.detect_objects_in_video(source, max_frames=5)
    assert [d.frame_index for d in detections] == [0, 60, 120, 180, 240]


def test_detect_and_track_objects(loaded_api, static_source):
    results = loaded_api.detect_and_track_objects(static_source, target_class="person")
    assert len(results) == 20
    assert results[0].source == ResultSource.DETECTION


def test_submitted_operation_completes(loaded_api, static_source):
    handle = loaded_api.submit_detect_and_track(static_source, min_confidence=0.5)
    assert len(handle.future.result(timeout=30)) == 20


def test_cancel_submitted_operation(loaded_api, static_source):
    submitted = threading.Event()
    handle_box = []

    def on_progress(done, total):
        if done == 2:
            submitted.wait(timeout=10)
            loaded_api.cancel_processing(handle_box[0].operation_id)

    handle = loaded_api.submit_detect_and_track(static_source, on_progress=on_progress)
    handle_box.append(handle)
    submitted.set()

    with pytest.raises(ProcessingCancelled) as excinfo:
        handle.future.result(timeout=30)
    assert sorted({r.frame_index for r in excinfo.value.partial_results}) == [0, 1]


def test_cancel_unknown_operation(api):
    assert not api.cancel_processing("nope")


def test_apply_effect_to_frame(api, tmp_path):
    image_path = save_image(textured_frame(), str(tmp_path / "frame.png"))
    out = api.apply_effect_to_frame(
        image_path,
        {"x": 0, "y": 0, "width": 8, "height": 8},
        {"type": "color", "color": "#00ff00"},
        output_path=str(tmp_path / "out.png"),
    )
    image = load_image(out)
    assert (image[:8, :8] == (0, 255, 0)).all()


def test_apply_effect_rejects_bad_effect(api, tmp_path):
    image_path = save_image(textured_frame(), str(tmp_path / "frame.png"))
    with pytest.raises(InvalidInput):
        api.apply_effect_to_frame(image_path, (0, 0, 8, 8), {"type": "sparkle"})


def test_effects_need_results(api, static_source):
    with pytest.raises(InvalidInput, match="No objects detected"):
        api.process_video_with_effects(static_source, [], {"type": "blur"})


def test_previews(loaded_api, static_source):
    results = loaded_api.detect_and_track_objects(static_source)
    previews = loaded_api.generate_preview_frames(static_source, results, frame_count=5)
    assert [p.frame_index for p in previews] == [0, 2, 4, 6, 8]
    assert all(os.path.isfile(p.image_path) for p in previews)

    detections = loaded_api.detect_objects_in_frame(static_source, 0)
    assert os.path.isfile(loaded_api.create_detection_preview(static_source, 0, detections))

    object_id = loaded_api.select_object(static_source, 1, (8, 8, 20, 20))
    assert os.path.isfile(loaded_api.generate_object_preview(static_source, object_id))


def test_no_previews_without_results(api, static_source):
    assert api.generate_preview_frames(static_source, []) == []


def test_process_video(loaded_api, static_source):
    RecordingWriter.instances = []
    progress = []
    options = ProcessVideoOptions(
        target_class="person",
        effect={"type": "mosaic", "blockSize": 5},
        create_visualization=True,
        output_path="processed.mp4",
    )
    with patch("trackfx.pipeline.render.VideoWriter", RecordingWriter):
        outcome = loaded_api.process_video(
            static_source, options, on_progress=lambda p, s: progress.append(p)
        )

    assert len(outcome.tracking_results) == 20
    assert outcome.processed_video_path == "processed.mp4"
    assert outcome.visualization_path.endswith(".mp4")
    assert [len(w.frames) for w in RecordingWriter.instances] == [10, 10]
    assert progress[0] == 0
    assert progress[-1] == 100
    assert progress == sorted(progress)


def test_process_video_without_effect(loaded_api, static_source):
    progress = []
    outcome = loaded_api.process_video(
        static_source, ProcessVideoOptions(), on_progress=lambda p, s: progress.append((p, s))
    )
    assert outcome.processed_video_path is None
    assert outcome.visualization_path is None
    assert progress[-1] == (100, "Processing completed")


def test_detector_receives_raw_frames(api):
    detector = FakeDetector([make_detection()])
    api.detector = detector
    source = ArrayFrameSource(
        [textured_frame()] * 2, transform=VideoTransform.from_rotation(90, 64, 64)
    )
    detections = api.detect_objects_in_frame(source, 0)
    assert detections[0].bounding_box.to_dict() == {
        "x": 32.0, "y": 16.0, "width": 16.0, "height": 16.0,
    }
