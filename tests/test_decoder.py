import numpy as np
import pytest

from trackfx.detection.decoder import TensorDecoder, TensorLayout
from trackfx.errors import ShapeMismatch

LAYOUT = TensorLayout(num_classes=80, num_mask_coefficients=32, num_anchors=8400)


def empty_tensor(layout=LAYOUT):
    return np.zeros((1, layout.num_features, layout.num_anchors), dtype=np.float32)


def put(tensor, slot, box, objectness, class_index, score):
    tensor[0, 0:4, slot] = box
    tensor[0, 4, slot] = objectness
    tensor[0, 5 + class_index, slot] = score


def test_single_candidate_is_decoded():
    tensor = empty_tensor()
    put(tensor, 42, (0.5, 0.5, 0.2, 0.4), 0.9, 3, 0.8)
    tensor[0, 85:, 42] = np.arange(32)

    detections = TensorDecoder(LAYOUT).decode(tensor)

    assert len(detections) == 1
    detection = detections[0]
    assert detection.confidence == pytest.approx(0.72)
    assert detection.identifier == "3"
    assert detection.class_name == "motorcycle"
    box = detection.bounding_box
    assert box.x == pytest.approx(0.4)
    assert box.y == pytest.approx(0.3)
    assert box.width == pytest.approx(0.2)
    assert box.height == pytest.approx(0.4)
    assert detection.mask_coefficients.tolist() == list(range(32))


def test_all_zero_tensor_yields_nothing():
    assert TensorDecoder(LAYOUT).decode(empty_tensor()) == []


def test_objectness_gate_and_final_confidence_filter():
    tensor = empty_tensor()
    # Objectness below the gate.
    put(tensor, 0, (0.5, 0.5, 0.1, 0.1), 0.05, 0, 1.0)
    # Passes the gate but 0.2 * 0.4 = 0.08 fails the final threshold.
    put(tensor, 1, (0.5, 0.5, 0.1, 0.1), 0.2, 0, 0.4)
    # Kept.
    put(tensor, 2, (0.5, 0.5, 0.1, 0.1), 0.5, 0, 0.5)

    detections = TensorDecoder(LAYOUT).decode(tensor)
    assert [d.confidence for d in detections] == [pytest.approx(0.25)]


def test_candidates_follow_anchor_order():
    tensor = empty_tensor()
    put(tensor, 100, (0.2, 0.2, 0.1, 0.1), 0.6, 2, 0.9)
    put(tensor, 7, (0.7, 0.7, 0.1, 0.1), 0.9, 0, 0.9)
    detections = TensorDecoder(LAYOUT).decode(tensor)
    assert [d.identifier for d in detections] == ["0", "2"]


def test_class_beyond_known_names_is_discarded():
    layout = TensorLayout(num_classes=100, num_mask_coefficients=0, num_anchors=16)
    tensor = empty_tensor(layout)
    put(tensor, 5, (0.5, 0.5, 0.1, 0.1), 0.9, 90, 0.9)
    assert TensorDecoder(layout, class_names=["a", "b", "c"]).decode(tensor) == []


def test_custom_names_fall_back_to_coco():
    tensor = empty_tensor()
    put(tensor, 5, (0.5, 0.5, 0.1, 0.1), 0.9, 7, 0.9)
    assert TensorDecoder(LAYOUT, class_names=["cup", "plate"]).decode(tensor)[0].class_name == "truck"


def test_last_anchor_slot_is_scanned():
    tensor = empty_tensor()
    put(tensor, LAYOUT.num_anchors - 1, (0.5, 0.5, 0.2, 0.2), 0.9, 0, 0.9)
    detections = TensorDecoder(LAYOUT).decode(tensor)
    assert len(detections) == 1
    assert detections[0].class_name == "person"


def test_custom_class_names_are_used():
    tensor = empty_tensor()
    put(tensor, 5, (0.5, 0.5, 0.1, 0.1), 0.9, 1, 0.9)
    decoder = TensorDecoder(LAYOUT, class_names=["cup", "plate"])
    assert decoder.decode(tensor)[0].class_name == "plate"


def test_wrong_shape_raises():
    with pytest.raises(ShapeMismatch):
        TensorDecoder(LAYOUT).decode(np.zeros((1, 100, 8400), dtype=np.float32))
    with pytest.raises(ShapeMismatch):
        TensorDecoder(LAYOUT).decode(np.zeros((2, 117, 8400), dtype=np.float32))


def test_decode_safe_swallows_shape_mismatch():
    assert TensorDecoder(LAYOUT).decode_safe(np.zeros((1, 10, 10))) == []


def test_flat_and_anchor_major_inputs():
    layout = TensorLayout(num_classes=2, num_mask_coefficients=0, num_anchors=4)
    tensor = np.zeros((1, layout.num_features, 4), dtype=np.float32)
    tensor[0, :, 1] = (0.5, 0.5, 0.2, 0.2, 0.9, 0.1, 0.9)

    flat = TensorDecoder(layout).decode(tensor.ravel())
    assert len(flat) == 1 and flat[0].identifier == "1"
    assert flat[0].mask_coefficients is None

    transposed = TensorLayout(num_classes=2, num_mask_coefficients=0, num_anchors=4, anchor_major=True)
    swapped = TensorDecoder(transposed).decode(tensor.transpose(0, 2, 1))
    assert swapped[0].confidence == pytest.approx(flat[0].confidence)


def test_box_scale_normalizes_pixel_boxes():
    layout = TensorLayout(num_classes=1, num_mask_coefficients=0, num_anchors=2, box_scale=640.0)
    tensor = np.zeros((1, layout.num_features, 2), dtype=np.float32)
    tensor[0, :, 0] = (320, 320, 64, 128, 0.9, 0.9)
    box = TensorDecoder(layout, class_names=["thing"]).decode(tensor)[0].bounding_box
    assert box.x == pytest.approx(0.45)
    assert box.y == pytest.approx(0.4)


def test_trace_receives_every_stage():
    tensor = empty_tensor()
    put(tensor, 42, (0.5, 0.5, 0.2, 0.4), 0.9, 3, 0.8)
    stages = []
    TensorDecoder(LAYOUT).decode(tensor, trace=lambda stage, payload: stages.append((stage, payload)))
    assert [s for s, _ in stages] == ["reshape", "gate", "candidate", "decoded"]
    assert stages[1][1]["slots"] == [42]
    assert stages[2][1]["slot"] == 42
