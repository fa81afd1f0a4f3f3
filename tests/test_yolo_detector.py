import os
import tempfile
import unittest
from unittest.mock import MagicMock, patch
import numpy as np
import torch

from trackfx.config import DetectionConfig, ModelConfig
from trackfx.detection.yolo import YOLODetector, anchor_count
from trackfx.errors import InvalidInput, ModelLoadError

CLASSES = ["person", "car", "dog"]
INPUT_SIZE = 64
ANCHORS = 84
FEATURES = 5 + len(CLASSES)


def raw_output(*slots):
    """Build a [1, F, N] tensor from (slot, cx, cy, w, h, objectness, class, score)."""
    tensor = torch.zeros((1, FEATURES, ANCHORS))
    for slot, cx, cy, w, h, objectness, class_index, score in slots:
        tensor[0, 0:4, slot] = torch.tensor([cx, cy, w, h])
        tensor[0, 4, slot] = objectness
        tensor[0, 5 + class_index, slot] = score
    return tensor


class TestYOLODetector(unittest.TestCase):
    def setUp(self):
        handle, self.model_path = tempfile.mkstemp(suffix=".torchscript")
        os.close(handle)
        self.frame = np.zeros((100, 200, 3), dtype=np.uint8)

    def tearDown(self):
        os.remove(self.model_path)

    def make_detector(self, mock_load, output, **kwargs):
        mock_model = MagicMock()
        mock_model.return_value = output
        mock_load.return_value = mock_model
        options = dict(class_names=CLASSES, input_size=INPUT_SIZE, num_mask_coefficients=0)
        options.update(kwargs)
        detector = YOLODetector(model_path=self.model_path, **options)
        return detector, mock_model

    def test_anchor_count(self):
        self.assertEqual(anchor_count(640), 8400)
        self.assertEqual(anchor_count(INPUT_SIZE), ANCHORS)

    @patch('trackfx.detection.yolo.torch.jit.load')
    def test_init_loads_model(self, mock_load):
        detector, mock_model = self.make_detector(mock_load, raw_output())
        mock_load.assert_called_once_with(self.model_path, map_location='cpu')
        mock_model.eval.assert_called_once()
        self.assertTrue(detector.is_loaded)
        self.assertEqual(detector.decoder.layout.num_anchors, ANCHORS)

    @patch('trackfx.detection.yolo.torch.jit.load')
    def test_file_uri_is_accepted(self, mock_load):
        mock_load.return_value = MagicMock()
        YOLODetector(model_path="file://" + self.model_path, input_size=INPUT_SIZE)
        mock_load.assert_called_once_with(self.model_path, map_location='cpu')

    @patch('trackfx.detection.yolo.torch.jit.load')
    def test_detect_empty(self, mock_load):
        detector, _ = self.make_detector(mock_load, raw_output())
        self.assertEqual(detector.detect(self.frame), [])

    @patch('trackfx.detection.yolo.torch.jit.load')
    def test_detect_maps_boxes_to_source_frame(self, mock_load):
        output = raw_output((10, 0.5, 0.5, 0.5, 0.25, 0.9, 2, 0.9))
        detector, mock_model = self.make_detector(mock_load, output)

        results = detector.detect(self.frame)

        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].class_name, "dog")
        self.assertEqual(results[0].identifier, "2")
        self.assertAlmostEqual(results[0].confidence, 0.81, places=5)
        box = results[0].bounding_box
        self.assertAlmostEqual(box.x, 0.25, places=5)
        self.assertAlmostEqual(box.y, 0.25, places=5)
        self.assertAlmostEqual(box.width, 0.5, places=5)
        self.assertAlmostEqual(box.height, 0.5, places=5)

        batch = mock_model.call_args[0][0]
        self.assertEqual(tuple(batch.shape), (1, 3, INPUT_SIZE, INPUT_SIZE))

    @patch('trackfx.detection.yolo.torch.jit.load')
    def test_detect_applies_nms(self, mock_load):
        output = raw_output(
            (3, 0.5, 0.5, 0.5, 0.5, 0.9, 0, 0.7),
            (4, 0.5, 0.5, 0.5, 0.45, 0.9, 0, 0.9),
            (5, 0.1, 0.5, 0.1, 0.1, 0.9, 1, 0.5),
        )
        detector, _ = self.make_detector(mock_load, output)
        stages = []
        results = detector.detect(self.frame, trace=lambda stage, payload: stages.append((stage, payload)))

        self.assertEqual([r.class_name for r in results], ["person", "car"])
        self.assertAlmostEqual(results[0].confidence, 0.81, places=5)
        self.assertEqual(stages[-1], ("nms", {"before": 3, "after": 2}))

    @patch('trackfx.detection.yolo.torch.jit.load')
    def test_tuple_output_uses_first_element(self, mock_load):
        output = raw_output((10, 0.5, 0.5, 0.5, 0.25, 0.9, 1, 0.9))
        detector, _ = self.make_detector(mock_load, (output, torch.zeros(1, 32, 16, 16)))
        self.assertEqual(len(detector.detect(self.frame)), 1)

    @patch('trackfx.detection.yolo.torch.jit.load')
    def test_custom_labels_on_coco_head(self, mock_load):
        output = torch.zeros((1, 85, ANCHORS))
        output[0, 0:4, 10] = torch.tensor([0.5, 0.5, 0.5, 0.25])
        output[0, 4, 10] = 0.9
        output[0, 6, 10] = 0.9
        detector, _ = self.make_detector(mock_load, output, class_names=["helmet", "vest"])

        results = detector.detect(self.frame)

        self.assertEqual(detector.decoder.layout.num_classes, 80)
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].class_name, "vest")
        self.assertEqual(results[0].identifier, "1")

    @patch('trackfx.detection.yolo.torch.jit.load')
    def test_custom_labels_fall_back_to_coco(self, mock_load):
        output = torch.zeros((1, 85, ANCHORS))
        output[0, 0:4, 10] = torch.tensor([0.5, 0.5, 0.5, 0.25])
        output[0, 4, 10] = 0.9
        output[0, 5 + 7, 10] = 0.9
        detector, _ = self.make_detector(mock_load, output, class_names=["helmet", "vest"])
        self.assertEqual([r.class_name for r in detector.detect(self.frame)], ["truck"])

    @patch('trackfx.detection.yolo.torch.jit.load')
    def test_configured_class_rows_are_not_inferred(self, mock_load):
        detector, _ = self.make_detector(
            mock_load, raw_output((10, 0.5, 0.5, 0.5, 0.25, 0.9, 2, 0.9)), num_classes=80
        )
        self.assertEqual(detector.detect(self.frame), [])
        self.assertEqual(detector.decoder.layout.num_classes, 80)

    def test_from_config_carries_layout_options(self):
        detector = YOLODetector.from_config(
            ModelConfig(input_size=INPUT_SIZE, num_classes=2),
            DetectionConfig(num_mask_coefficients=0, box_scale=64.0),
        )
        layout = detector.decoder.layout
        self.assertEqual(layout.num_classes, 2)
        self.assertEqual(layout.box_scale, 64.0)
        self.assertEqual(layout.num_features, 7)

    @patch('trackfx.detection.yolo.torch.jit.load')
    def test_shape_mismatch_yields_no_detections(self, mock_load):
        detector, _ = self.make_detector(mock_load, torch.zeros((1, 117, 8400)))
        self.assertEqual(detector.detect(self.frame), [])

    @patch('trackfx.detection.yolo.torch.jit.load')
    def test_inference_error_yields_no_detections(self, mock_load):
        detector, mock_model = self.make_detector(mock_load, None)
        mock_model.side_effect = RuntimeError("boom")
        self.assertEqual(detector.detect(self.frame), [])

    @patch('trackfx.detection.yolo.torch.jit.load')
    def test_model_input_size_overrides_default(self, mock_load):
        mock_model = MagicMock()
        mock_model.input_size = 320
        mock_load.return_value = mock_model
        detector = YOLODetector(model_path=self.model_path)
        self.assertEqual(detector.input_size, 320)
        self.assertEqual(detector.decoder.layout.num_anchors, anchor_count(320))

    def test_detect_without_model(self):
        detector = YOLODetector()
        self.assertFalse(detector.is_loaded)
        self.assertEqual(detector.detect(self.frame), [])

    def test_missing_model_file(self):
        with self.assertRaises(ModelLoadError):
            YOLODetector(model_path="/nonexistent/model.torchscript")

    def test_unknown_model_type(self):
        with self.assertRaises(InvalidInput):
            YOLODetector(model_path=self.model_path, model_type="ssd")

    @patch('trackfx.detection.yolo.torch.jit.load')
    def test_unreadable_model(self, mock_load):
        mock_load.side_effect = RuntimeError("not a TorchScript archive")
        with self.assertRaises(ModelLoadError):
            YOLODetector(model_path=self.model_path)


if __name__ == '__main__':
    unittest.main()
