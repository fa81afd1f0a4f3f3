from pathlib import Path
from unittest.mock import patch

import pytest

from trackfx.__main__ import main
from trackfx.cli import parse_args, parse_box
from trackfx.errors import NoVideoTrack


@pytest.fixture
def video(tmp_path: Path) -> Path:
    input_path = tmp_path / "input.mp4"
    input_path.write_bytes(b"fake")
    return input_path


def test_cli_parses_track_flags(video: Path):
    config = parse_args(
        [
            "track",
            str(video),
            "--model",
            "yolo11n.torchscript",
            "--target-class",
            "person",
            "--min-confidence",
            "0.6",
            "--interval",
            "5",
            "--effect",
            "mosaic",
            "--block-size",
            "20",
            "-o",
            "out.mp4",
            "--results",
            "results.csv",
            "--workers",
            "4",
        ]
    )

    assert config.command == "track"
    assert config.model.model_path == "yolo11n.torchscript"
    assert config.detection.target_class == "person"
    assert config.detection.min_confidence == 0.6
    assert config.detection.interval == 5
    assert config.effect == {"type": "mosaic", "blockSize": 20}
    assert config.output_path == "out.mp4"
    assert config.output.results_path == "results.csv"
    assert config.tracking.workers == 4
    assert config.tracking.tracker == "template"


def test_cli_parses_select_flags(video: Path):
    config = parse_args(
        [
            "select",
            f"file://{video}",
            "--box",
            "10,20,30,40",
            "--frame",
            "3",
            "--effect",
            "emoji",
            "--rotation",
            "45",
        ]
    )

    assert config.command == "select"
    assert config.select_box == (10.0, 20.0, 30.0, 40.0)
    assert config.frame_index == 3
    assert config.effect["type"] == "emoji"
    assert config.effect["rotation"] == 45.0
    assert config.model.model_path is None


def test_cli_detect_defaults(video: Path):
    config = parse_args(["detect", str(video), "--model", "m.pt"])
    assert config.frame_index == 0
    assert config.output_path is None
    assert config.model.model_type == "yolo11"
    assert config.detection.iou_threshold == 0.5
    assert config.model.num_classes is None
    assert config.detection.box_scale == 1.0


def test_cli_parses_model_layout_flags(video: Path):
    config = parse_args(
        ["detect", str(video), "--model", "m.pt", "--num-classes", "2", "--box-scale", "640"]
    )
    assert config.model.num_classes == 2
    assert config.detection.box_scale == 640.0


def test_cli_reads_class_names(video: Path, tmp_path: Path):
    classes = tmp_path / "classes.txt"
    classes.write_text("cup\nplate\n", encoding="utf-8")
    config = parse_args(["detect", str(video), "--model", "m.pt", "--classes", str(classes)])
    assert config.model.class_names == ["cup", "plate"]


@pytest.mark.parametrize(
    "extra",
    [
        ["--min-confidence", "1.5"],
        ["--interval", "0"],
        ["--loss-threshold", "-0.1"],
        ["--max-missed", "0"],
        ["--results", "results.xml"],
        ["--effect", "sparkle"],
        ["--num-classes", "0"],
        ["--box-scale", "0"],
    ],
)
def test_cli_rejects_invalid_track_options(video: Path, extra):
    with pytest.raises(SystemExit):
        parse_args(["track", str(video), "--model", "m.pt"] + extra)


def test_cli_requires_model_for_track(video: Path):
    with pytest.raises(SystemExit):
        parse_args(["track", str(video)])


def test_cli_rejects_missing_input(tmp_path: Path):
    with pytest.raises(SystemExit):
        parse_args(["resolution", str(tmp_path / "missing.mp4")])


@pytest.mark.parametrize("box", ["1,2,3", "a,b,c,d", "0,0,0,5"])
def test_cli_rejects_bad_boxes(video: Path, box):
    with pytest.raises(SystemExit):
        parse_args(["select", str(video), "--box", box])


def test_parse_box():
    assert parse_box("1,2.5,3,4") == (1.0, 2.5, 3.0, 4.0)


def test_main_exits_on_errors(video: Path):
    with patch("sys.argv", ["trackfx", "resolution", str(video)]), \
            patch("trackfx.__main__.setup_logger"), \
            patch("trackfx.__main__.run_headless", side_effect=NoVideoTrack("bad file")):
        with pytest.raises(SystemExit) as excinfo:
            main()
    assert excinfo.value.code == 1
