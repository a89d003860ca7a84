"""
Tests for image file I/O and job reports.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

import json

import numpy as np
import pytest
from astropy.io import fits

from starstack.config import StackConfig
from starstack.frame import Frame
from starstack.io import list_images, load_frames, read_image, write_image
from starstack.pipeline import stack_frames
from starstack.report import build_report, write_report, write_report_markdown


def _ramp(height=8, width=16):
    gray = np.linspace(0, 255, height * width).reshape(height, width)
    return Frame.from_array(np.rint(gray).astype(np.uint8), name="ramp")


class TestImageFiles:
    """Tests for decoding and encoding."""

    def test_png_round_trip(self, tmp_path, noise_frame):
        frame = noise_frame(seed=1, height=10, width=12)
        path = write_image(tmp_path / "out.png", frame)

        back = read_image(path)
        assert back.name == "out.png"
        assert np.array_equal(back.data, frame.data)

    def test_jpeg_drops_alpha(self, tmp_path, constant_frame):
        path = write_image(tmp_path / "out.jpg", constant_frame(128, height=16, width=16))
        back = read_image(path)
        assert back.shape == (16, 16)
        assert np.all(back.data[..., 3] == 255)
        assert np.all(np.abs(back.data[..., :3].astype(int) - 128) <= 2)

    def test_fits_round_trip(self, tmp_path):
        frame = _ramp()
        path = write_image(tmp_path / "out.fits", frame)

        with fits.open(path) as hdul:
            assert hdul[0].data.shape == (3, 8, 16)
            assert hdul[0].header["CREATOR"] == "starstack"

        back = read_image(path)
        assert np.array_equal(back.data[..., :3], frame.data[..., :3])

    def test_fits_is_scaled_to_8_bit(self, tmp_path):
        data = np.linspace(1000.0, 5000.0, 20, dtype=np.float32).reshape(4, 5)
        path = tmp_path / "mono.fit"
        fits.PrimaryHDU(data=data).writeto(path)

        frame = read_image(path)
        assert frame.data[0, 0, 0] == 0
        assert frame.data[3, 4, 0] == 255

    def test_undecodable_file_is_none(self, tmp_path, noise_frame):
        good = write_image(tmp_path / "good.png", noise_frame(height=4, width=4))
        bad = tmp_path / "bad.png"
        bad.write_bytes(b"not an image")

        frames = load_frames([good, bad, tmp_path / "missing.png"])

        assert frames[0] is not None
        assert frames[1] is None
        assert frames[2] is None

    def test_list_images(self, tmp_path):
        for name in ("b.png", "a.fits", "notes.txt"):
            (tmp_path / name).write_bytes(b"")
        assert [p.name for p in list_images(tmp_path)] == ["a.fits", "b.png"]

    def test_list_images_requires_directory(self, tmp_path):
        with pytest.raises(ValueError):
            list_images(tmp_path / "nope")


class TestReport:
    """Tests for job reports."""

    def test_report_of_success(self, noise_frame):
        frames = [noise_frame(seed=2) for _ in range(3)]
        result = stack_frames(frames, "dumb")
        report = build_report(result, StackConfig(strategy="dumb"), inputs=["a", "b", "c"])

        assert report["success"] is True
        assert report["config"]["strategy"] == "dumb"
        assert report["summary"]["frames_stacked"] == 3
        assert len(report["alignments"]) == 3
        assert report["alignments"][0]["success"] is True
        json.dumps(report)

    def test_report_of_failure(self, tmp_path, noise_frame):
        result = stack_frames([noise_frame(), None], "dumb")
        path = write_report(result, tmp_path / "report.json")

        report = json.loads(path.read_text())
        assert report["success"] is False
        assert report["error_kind"] == "insufficient_frames"
        assert report["rejection_reasons"] == {"decode_failed": 1}

    def test_markdown(self, tmp_path, noise_frame):
        result = stack_frames([noise_frame(), noise_frame()], "dumb")
        path = write_report_markdown(result, tmp_path / "report.md")
        text = path.read_text()
        assert text.startswith("# Stacking Report")
        assert "| 1 | dumb | True |" in text
