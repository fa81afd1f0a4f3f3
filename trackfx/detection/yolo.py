"""YOLO-style detector running a TorchScript model."""

import logging
import os
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple
from urllib.error import URLError
from urllib.parse import urlparse

import numpy as np
import torch
from appdirs import user_cache_dir

from ..config import MODEL_TYPES, DetectionConfig, ModelConfig
from ..core.coords import Letterbox, normalize
from ..errors import InvalidInput, ModelLoadError
from ..logger_config import APP_NAME
from .base import DetectedObject
from .decoder import DecodeTrace, TensorDecoder, TensorLayout
from .labels import COCO_CLASSES
from .nms import SuppressionEngine

logger = logging.getLogger(__name__)

ANCHOR_STRIDES = (8, 16, 32)


def anchor_count(input_size: int) -> int:
    """Number of anchor slots a three-scale head produces for a square input."""
    return sum((input_size // stride) ** 2 for stride in ANCHOR_STRIDES)


class YOLODetector:
    """YOLO object detector implementing the Detector protocol.

    Frames are letterboxed to the model's square input, the raw output is
    decoded and suppressed, and boxes are mapped back to the source frame.

    Attributes:
        model: Loaded TorchScript module, or None before ``load_model``.
        class_names: Labels indexed by class id.
        input_size: Side of the square network input.
    """

    def __init__(
        self,
        model_path: Optional[str] = None,
        model_type: str = "yolo11",
        class_names: Optional[Sequence[str]] = None,
        input_size: int = 640,
        objectness_threshold: float = 0.1,
        confidence_threshold: float = 0.1,
        iou_threshold: float = 0.5,
        num_mask_coefficients: int = 32,
        num_classes: Optional[int] = None,
        box_scale: float = 1.0,
        device: str = "cpu",
    ):
        """Initialize YOLODetector.

        Args:
            model_path: Local path, ``file://`` URI or http(s) URL. When
                omitted the detector stays unloaded until ``load_model``.
            model_type: One of ``MODEL_TYPES``.
            class_names: Labels overriding the built-in COCO set.
            input_size: Fallback network input side when the model does not
                expose ``input_size``.
            objectness_threshold: Decoder objectness gate.
            confidence_threshold: Decoder reporting threshold.
            iou_threshold: NMS IoU threshold.
            num_mask_coefficients: Mask coefficient rows in the output.
            num_classes: Class score rows in the output. Inferred from the
                first output when omitted, independent of ``class_names``.
            box_scale: Divisor bringing raw box values into 0..1.
            device: Device to run inference on.
        """
        self.model = None
        self.model_type = model_type
        self.class_names = list(class_names) if class_names else list(COCO_CLASSES)
        self.input_size = input_size
        self.objectness_threshold = objectness_threshold
        self.confidence_threshold = confidence_threshold
        self.num_mask_coefficients = num_mask_coefficients
        self.num_classes = num_classes
        self.box_scale = box_scale
        self.device = device
        self.suppression = SuppressionEngine(iou_threshold)
        self.decoder = self._build_decoder()
        if model_path:
            self.load_model(model_path, model_type, class_names)

    @classmethod
    def from_config(
        cls, model: ModelConfig, detection: Optional[DetectionConfig] = None
    ) -> "YOLODetector":
        """Create YOLODetector from configuration."""
        detection = detection or DetectionConfig()
        return cls(
            model_path=model.model_path,
            model_type=model.model_type,
            class_names=model.class_names,
            input_size=model.input_size,
            objectness_threshold=detection.objectness_threshold,
            confidence_threshold=detection.confidence_threshold,
            iou_threshold=detection.iou_threshold,
            num_mask_coefficients=detection.num_mask_coefficients,
            num_classes=model.num_classes,
            box_scale=detection.box_scale,
            device=detection.device,
        )

    @property
    def is_loaded(self) -> bool:
        return self.model is not None

    def _build_decoder(self, num_classes: Optional[int] = None) -> TensorDecoder:
        layout = TensorLayout(
            num_classes=num_classes or self.num_classes or len(COCO_CLASSES),
            num_mask_coefficients=self.num_mask_coefficients,
            num_anchors=anchor_count(self.input_size),
            box_scale=self.box_scale,
        )
        return TensorDecoder(
            layout,
            self.class_names,
            objectness_threshold=self.objectness_threshold,
            confidence_threshold=self.confidence_threshold,
        )

    def _resolve_model_path(self, path: str) -> str:
        """Return a local file for ``path``, downloading URLs into the cache."""
        if not path:
            raise ModelLoadError("Model path must not be empty")
        if path.startswith("file://"):
            path = path[len("file://"):]
        elif path.startswith(("http://", "https://")):
            cache_dir = os.path.join(user_cache_dir(APP_NAME), "models")
            os.makedirs(cache_dir, exist_ok=True)
            filename = os.path.basename(urlparse(path).path) or "model.pt"
            local = os.path.join(cache_dir, filename)
            if not os.path.isfile(local):
                logger.info("Downloading model %s to %s", path, local)
                try:
                    torch.hub.download_url_to_file(path, local, progress=True)
                except (URLError, OSError, ValueError) as e:
                    raise ModelLoadError(f"Failed to download model from {path}: {e}") from e
            path = local
        if not os.path.isfile(path):
            raise ModelLoadError(f"Model file not found: {path}")
        return path

    def load_model(
        self,
        path: str,
        model_type: str = "yolo11",
        class_names: Optional[Sequence[str]] = None,
    ) -> None:
        """Load a TorchScript detection model.

        Raises:
            InvalidInput: If ``model_type`` is unknown.
            ModelLoadError: If the artifact cannot be located or read.
        """
        if model_type not in MODEL_TYPES:
            raise InvalidInput(
                f"Unknown model type {model_type!r}, expected one of {MODEL_TYPES}"
            )
        local_path = self._resolve_model_path(path)
        logger.info("Loading %s model from %s", model_type, local_path)
        try:
            model = torch.jit.load(local_path, map_location=self.device)
        except (RuntimeError, ValueError, OSError) as e:
            raise ModelLoadError(f"Failed to load model {local_path}: {e}") from e
        model.eval()

        exposed_size = getattr(model, "input_size", None)
        if isinstance(exposed_size, int) and exposed_size > 0:
            self.input_size = exposed_size
        if class_names:
            self.class_names = list(class_names)
        self.model = model
        self.model_type = model_type
        self.decoder = self._build_decoder()
        logger.info(
            "Model loaded: input %dx%d, %d class names",
            self.input_size, self.input_size, len(self.class_names),
        )

    def _fit_layout(self, raw) -> None:
        """Size the class rows from the model output unless configured."""
        shape = getattr(raw, "shape", None)
        if self.num_classes is not None or shape is None or len(shape) != 3:
            return
        layout = self.decoder.layout
        features = shape[2] if layout.anchor_major else shape[1]
        inferred = int(features) - 5 - self.num_mask_coefficients
        if inferred > 0 and inferred != layout.num_classes:
            logger.info("Model output has %d class rows", inferred)
            self.decoder = self._build_decoder(inferred)

    def preprocess(self, frame: np.ndarray) -> Tuple[torch.Tensor, Letterbox]:
        """Letterbox an RGB frame into a ``[1, 3, S, S]`` float tensor in 0..1."""
        height, width = frame.shape[:2]
        letterbox = Letterbox.fit(width, height, self.input_size)
        canvas = letterbox.apply(frame)
        tensor = torch.from_numpy(np.ascontiguousarray(canvas)).permute(2, 0, 1)
        tensor = tensor.float().div(255.0).unsqueeze(0).to(self.device)
        return tensor, letterbox

    def infer(self, tensor: torch.Tensor):
        with torch.no_grad():
            output = self.model(tensor)
        if isinstance(output, (tuple, list)):
            output = output[0]
        return output

    def detect(
        self, frame: np.ndarray, trace: Optional[DecodeTrace] = None
    ) -> List[DetectedObject]:
        """Detect objects in a frame.

        Args:
            frame: Input frame as RGB numpy array (H, W, 3).
            trace: Optional observer for intermediate values.

        Returns:
            Detections sorted by confidence, boxes normalized to ``frame``
            with a top-left origin. Empty when no model is loaded or
            inference fails.
        """
        if self.model is None:
            logger.warning("detect called before a model was loaded")
            return []

        height, width = frame.shape[:2]
        try:
            tensor, letterbox = self.preprocess(frame)
            raw = self.infer(tensor)
        except (RuntimeError, ValueError) as e:
            logger.warning("Inference failed: %s", e)
            return []

        self._fit_layout(raw)
        candidates = self.decoder.decode_safe(raw, trace=trace)
        kept = self.suppression.suppress(candidates)
        if trace is not None:
            trace("nms", {"before": len(candidates), "after": len(kept)})

        detections = []
        for detection in kept:
            source_box = letterbox.to_source(detection.bounding_box)
            if source_box.is_empty:
                continue
            detections.append(
                replace(detection, bounding_box=normalize(source_box, width, height))
            )

        if detections:
            labels = ", ".join(sorted(set(d.class_name for d in detections)))
            logger.debug("Detected %d objects: %s", len(detections), labels)
        return detections
