"""Command-line interface for trackfx."""

import argparse
from pathlib import Path

from . import __version__
from .config import MODEL_TYPES, TRACKER_NAMES, ProcessingConfig
from .detection.labels import load_class_names
from .effects.config import EFFECT_TYPES

EPILOG = """\
Examples:
  trackfx resolution clip.mov
  trackfx detect clip.mp4 --model yolo11n.torchscript --frame 30 -o preview.jpg
  trackfx track clip.mp4 --model yolo11n.torchscript --target-class person \\
      --effect blur --intensity 15 -o blurred.mp4 --results results.csv
  trackfx select clip.mp4 --box 120,80,64,64 --effect mosaic --block-size 20 -o out.mp4

Effects:
  blur    Gaussian blur, --intensity 0-20
  mosaic  Pixelation, --block-size 5-50
  emoji   Emoji overlay, --emoji, --scale 0.5-3, --rotation degrees
  color   Solid overlay, --color #RRGGBB, --opacity 0-1

Without --effect, -o writes a tracking visualization.
"""


def parse_box(value: str):
    """Parse ``X,Y,W,H`` into a tuple of floats."""
    parts = value.split(",")
    if len(parts) != 4:
        raise argparse.ArgumentTypeError(f"expected X,Y,W,H, got {value!r}")
    try:
        return tuple(float(p) for p in parts)
    except ValueError:
        raise argparse.ArgumentTypeError(f"box values must be numbers: {value!r}") from None


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("input", type=str, help="Input video file")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log debug messages"
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Log file (default: per-user log directory)",
    )


def _add_model(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--model",
        type=str,
        required=True,
        help="TorchScript model path, file:// URI or http(s) URL",
    )
    parser.add_argument(
        "--model-type",
        type=str,
        default="yolo11",
        choices=MODEL_TYPES,
        help="Model type (default: yolo11)",
    )
    parser.add_argument(
        "--classes",
        type=str,
        default=None,
        help="Text file with one class name per line (default: COCO classes)",
    )
    parser.add_argument(
        "--input-size",
        type=int,
        default=640,
        help="Network input size when the model does not declare one (default: 640)",
    )
    parser.add_argument(
        "--num-classes",
        type=int,
        default=None,
        help="Class score rows in the model output (default: inferred from the output)",
    )
    parser.add_argument(
        "--box-scale",
        type=float,
        default=1.0,
        help="Divisor for raw box values; use the input size for pixel-space models (default: 1.0)",
    )
    parser.add_argument(
        "--iou-threshold",
        type=float,
        default=0.5,
        help="NMS IoU threshold (default: 0.5)",
    )
    parser.add_argument(
        "--device",
        type=str,
        default="cpu",
        help="Torch device for inference (default: cpu)",
    )


def _add_tracking(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-o", "--output",
        type=str,
        default=None,
        help="Output video with the effect or tracking visualization",
    )
    parser.add_argument(
        "--results",
        type=str,
        default=None,
        help="Write tracking results to a .csv or .json file",
    )
    parser.add_argument(
        "--tracker",
        type=str,
        default="template",
        choices=TRACKER_NAMES,
        help="Per-object tracker backend (default: template)",
    )
    parser.add_argument(
        "--loss-threshold",
        type=float,
        default=0.3,
        help="Tracking confidence below which an object counts as lost (default: 0.3)",
    )
    parser.add_argument(
        "--max-missed",
        type=int,
        default=1,
        help="Consecutive low-confidence frames before a track is dropped (default: 1)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Threads used to advance tracks within a frame (default: 1)",
    )
    parser.add_argument(
        "--fps",
        type=float,
        default=None,
        help="Output frames per second (default: input fps)",
    )
    parser.add_argument(
        "--no-progress", action="store_true", help="Hide progress bars"
    )

    effects = parser.add_argument_group("effects")
    effects.add_argument(
        "--effect",
        type=str,
        default=None,
        choices=sorted(EFFECT_TYPES),
        help="Effect rendered into every tracked box",
    )
    effects.add_argument("--intensity", type=float, default=10.0, help="Blur intensity (default: 10)")
    effects.add_argument("--block-size", type=int, default=10, help="Mosaic block size (default: 10)")
    effects.add_argument("--emoji", type=str, default="\U0001F600", help="Emoji character")
    effects.add_argument("--scale", type=float, default=1.0, help="Emoji scale (default: 1.0)")
    effects.add_argument("--rotation", type=float, default=0.0, help="Emoji rotation in degrees")
    effects.add_argument("--color", type=str, default="#000000", help="Overlay color (default: #000000)")
    effects.add_argument("--opacity", type=float, default=1.0, help="Overlay opacity (default: 1.0)")


def _effect_from_args(parsed):
    if parsed.effect is None:
        return None
    if parsed.effect == "blur":
        return {"type": "blur", "intensity": parsed.intensity}
    if parsed.effect == "mosaic":
        return {"type": "mosaic", "blockSize": parsed.block_size}
    if parsed.effect == "emoji":
        return {
            "type": "emoji",
            "emoji": parsed.emoji,
            "scale": parsed.scale,
            "rotation": parsed.rotation,
        }
    return {"type": "color", "color": parsed.color, "opacity": parsed.opacity}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trackfx",
        description="Detect, track and apply effects to objects in video.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-V", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    commands = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    resolution = commands.add_parser("resolution", help="Print the displayed video resolution")
    _add_common(resolution)

    detect = commands.add_parser("detect", help="Detect objects in one frame")
    _add_common(detect)
    _add_model(detect)
    detect.add_argument("--frame", type=int, default=0, help="Frame index (default: 0)")
    detect.add_argument(
        "-o", "--output", type=str, default=None, help="Save an annotated preview image"
    )

    track = commands.add_parser("track", help="Detect and track objects through the video")
    _add_common(track)
    _add_model(track)
    _add_tracking(track)
    track.add_argument(
        "--target-class", type=str, default=None, help="Only track this class"
    )
    track.add_argument(
        "--min-confidence",
        type=float,
        default=0.5,
        help="Minimum detection confidence to start a track; 0.0-1.0 (default: 0.5)",
    )
    track.add_argument(
        "--interval",
        type=int,
        default=1,
        help="Run detection every N frames (default: 1)",
    )

    select = commands.add_parser("select", help="Track a manually selected region")
    _add_common(select)
    _add_tracking(select)
    select.add_argument(
        "--box",
        type=parse_box,
        required=True,
        help="Region X,Y,W,H in displayed pixels",
    )
    select.add_argument("--frame", type=int, default=0, help="Frame the region is on (default: 0)")
    return parser


def parse_args(args=None) -> ProcessingConfig:
    """Parse command-line arguments.

    Args:
        args: Arguments to parse (defaults to sys.argv).

    Returns:
        ProcessingConfig with parsed options.
    """
    parser = build_parser()
    parsed = parser.parse_args(args)

    input_path = parsed.input
    if input_path.startswith("file://"):
        input_path = input_path[len("file://"):]
    if not Path(input_path).exists():
        parser.error(f"Input file not found: {parsed.input}")

    command = parsed.command
    options = {}

    if command in ("detect", "track"):
        class_names = None
        if parsed.classes:
            if not Path(parsed.classes).exists():
                parser.error(f"Class names file not found: {parsed.classes}")
            class_names = load_class_names(parsed.classes)
        if not 0.0 <= parsed.iou_threshold <= 1.0:
            parser.error("--iou-threshold must be between 0.0 and 1.0")
        if parsed.num_classes is not None and parsed.num_classes < 1:
            parser.error("--num-classes must be >= 1")
        if parsed.box_scale <= 0:
            parser.error("--box-scale must be positive")
        options.update(
            model_path=parsed.model,
            model_type=parsed.model_type,
            class_names=class_names,
            input_size=parsed.input_size,
            num_classes=parsed.num_classes,
            box_scale=parsed.box_scale,
            iou_threshold=parsed.iou_threshold,
            device=parsed.device,
        )

    if command in ("detect", "select"):
        if parsed.frame < 0:
            parser.error("--frame must be >= 0")
        options["frame_index"] = parsed.frame

    if command in ("track", "select"):
        if not 0.0 <= parsed.loss_threshold <= 1.0:
            parser.error("--loss-threshold must be between 0.0 and 1.0")
        if parsed.max_missed < 1:
            parser.error("--max-missed must be >= 1")
        if parsed.workers < 1:
            parser.error("--workers must be >= 1")
        if parsed.results and Path(parsed.results).suffix.lower() not in (".csv", ".json"):
            parser.error("--results must end in .csv or .json")
        options.update(
            results_path=parsed.results,
            tracker=parsed.tracker,
            loss_threshold=parsed.loss_threshold,
            max_missed_frames=parsed.max_missed,
            workers=parsed.workers,
            fps=parsed.fps,
            effect=_effect_from_args(parsed),
            show_progress=not parsed.no_progress,
        )

    if command == "track":
        if not 0.0 <= parsed.min_confidence <= 1.0:
            parser.error("--min-confidence must be between 0.0 and 1.0")
        if parsed.interval < 1:
            parser.error("--interval must be >= 1")
        options.update(
            target_class=parsed.target_class,
            min_confidence=parsed.min_confidence,
            detection_interval=parsed.interval,
        )

    if command == "select":
        x, y, w, h = parsed.box
        if w <= 0 or h <= 0:
            parser.error("--box width and height must be positive")
        options["select_box"] = parsed.box

    return ProcessingConfig.from_args(
        command=command,
        input_path=parsed.input,
        output_path=getattr(parsed, "output", None),
        log_file=parsed.log_file,
        verbose=parsed.verbose,
        **options,
    )
