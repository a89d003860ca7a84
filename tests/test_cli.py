"""
Tests for the command-line interface.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

import argparse
import json

import numpy as np
import pytest

from starstack.cli import build_config, create_parser, main, parse_star
from starstack.cli_output import StackProgressBar
from starstack.config import AlignmentStrategy, CombineMode
from starstack.io import read_image, write_image
from starstack.utils import format_duration


@pytest.fixture
def frame_files(tmp_path, noise_frame):
    """Three identical noise frames on disk."""
    frame = noise_frame(seed=6, height=32, width=32)
    return [write_image(tmp_path / f"light_{i}.png", frame) for i in range(3)]


class TestParser:
    """Tests for argument parsing."""

    def test_stack_defaults(self):
        args = create_parser().parse_args(["stack", "a.png", "b.png"])
        config = build_config(args)
        assert config.strategy is AlignmentStrategy.STANDARD
        assert config.mode is CombineMode.AVERAGE
        assert config.detection.threshold == 180.0
        assert config.levels is None
        assert config.basic is None
        assert not config.remove_stars
        assert config.star_reduction_radius is None

    def test_stack_options(self):
        args = create_parser().parse_args([
            "stack", "a.png", "b.png",
            "--align", "consensus", "--mode", "sigma", "--sigma", "2.5",
            "--threshold", "auto", "--remove-stars", "190",
            "--black", "12", "--saturation", "120", "--workers", "3",
            "--reduce-stars", "2",
        ])
        config = build_config(args)
        assert config.strategy is AlignmentStrategy.CONSENSUS
        assert config.mode is CombineMode.SIGMA
        assert config.sigma == 2.5
        assert config.detection.threshold is None
        assert config.remove_stars and config.star_strength == 190.0
        assert config.levels.black_point == 12.0
        assert config.levels.white_point == 255.0
        assert config.basic.saturation == 120.0
        assert config.basic.brightness == 100.0
        assert config.workers == 3
        assert config.star_reduction_radius == 2

    def test_unknown_strategy_rejected(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["stack", "a.png", "--align", "astrometry"])

    def test_parse_star(self):
        star = parse_star("12.5,40")
        assert (star.x, star.y) == (12.5, 40.0)
        assert star.manual
        with pytest.raises(argparse.ArgumentTypeError):
            parse_star("12")


class TestMain:
    """Tests for the entry point."""

    def test_no_command(self):
        assert main([]) == 1

    def test_stack_writes_image_and_report(self, tmp_path, frame_files):
        out = tmp_path / "result" / "stacked.png"
        report = tmp_path / "report.json"
        code = main([
            "stack", *map(str, frame_files),
            "--align", "dumb", "--out", str(out), "--report", str(report), "-q",
        ])

        assert code == 0
        assert np.array_equal(read_image(out).data, read_image(frame_files[0]).data)
        data = json.loads(report.read_text())
        assert data["success"] is True
        assert data["inputs"] == ["light_0.png", "light_1.png", "light_2.png"]

    def test_stack_folder_input(self, tmp_path, frame_files):
        out = tmp_path / "stacked.png"
        assert main(["stack", str(tmp_path), "--align", "dumb", "--out", str(out), "-q"]) == 0
        assert out.exists()

    def test_stack_failure_returns_one(self, tmp_path, frame_files):
        out = tmp_path / "never.png"
        code = main(["stack", str(frame_files[0]), "--align", "dumb", "--out", str(out), "-q"])
        assert code == 1
        assert not out.exists()

    def test_invalid_option_value(self, frame_files):
        assert main(["stack", *map(str, frame_files), "--sigma", "-1", "-q"]) == 1

    def test_detect_json(self, tmp_path, star_frame, capsys):
        path = write_image(tmp_path / "stars.png", star_frame([(20, 30), (45, 12)], radius=3))
        assert main(["detect", str(path), "--json"]) == 0

        stars = json.loads(capsys.readouterr().out)
        assert len(stars) == 2
        assert {round(s["x"]) for s in stars} == {20, 45}

    def test_detect_listing(self, tmp_path, star_frame, capsys):
        path = write_image(tmp_path / "stars.png", star_frame([(20, 30)], radius=3))
        assert main(["detect", str(path), "--limit", "5"]) == 0
        assert "x=   20.00" in capsys.readouterr().out


class TestProgressBar:
    """Tests for the progress sink used by the stack command."""

    def test_advances_monotonically(self):
        with StackProgressBar(desc="test") as bar:
            bar(0.5)
            assert bar.bar.n == 50
            bar(0.3)
            assert bar.bar.n == 50
            bar(1.0)
            assert bar.bar.n == 100


class TestFormatDuration:
    """Tests for the elapsed-time string in the summary box."""

    @pytest.mark.parametrize("seconds, text", [
        (4.25, "4.2s"),
        (187.0, "3m 07s"),
        (3725.0, "1h 02m 05s"),
    ])
    def test_format(self, seconds, text):
        assert format_duration(seconds) == text
