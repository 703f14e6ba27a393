"""Tests for the command line entry point"""

import logging

import cv2
import pytest

from mosaic2d.config import CompositingMode, DetectorType, SeamMode
from mosaic2d.main import build_parser, config_from_args, main
from tests.conftest import textured_scene, translation, view_of


@pytest.fixture(autouse=True)
def no_log_file(monkeypatch):
    import mosaic2d.main

    def console_only(name, level=logging.INFO):
        from mosaic2d.utils.logger import setup_logger
        return setup_logger(name, level, log_to_file=False)

    monkeypatch.setattr(mosaic2d.main, "setup_logger", console_only)


def parse(*argv):
    return config_from_args(build_parser().parse_args(["-i", "in", "-o", "out", *argv]))


def test_cli_overrides():
    config = parse("--detector", "orb", "--euclidean", "--no-undistort", "--format", "TIF")
    assert config.detector == DetectorType.ORB
    assert config.euclidean_mode
    assert config.calibration is None
    assert config.output_format == "tif"


def test_bands_with_graph_cut_enable_multiband():
    config = parse("--bands", "5", "--graph-cut")
    assert config.seam == SeamMode.GRAPH_CUT
    assert config.compositing == CompositingMode.MULTI_BAND


def test_bands_without_graph_cut_use_direct_copy():
    assert parse("--bands", "5").compositing == CompositingMode.DIRECT_COPY


def test_config_file_then_overrides(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("detector: akaze\nscb: true\n")
    config = parse("-c", str(path), "--detector", "sift")
    assert config.detector == DetectorType.SIFT
    assert config.scb


def test_missing_input_directory(tmp_path):
    assert main(["-i", str(tmp_path / "missing"), "-o", str(tmp_path / "out")]) == 1


def test_empty_input_directory(tmp_path):
    assert main(["-i", str(tmp_path), "-o", str(tmp_path / "out")]) == 1


def test_negative_bands(tmp_path):
    assert main(["-i", str(tmp_path), "-o", str(tmp_path / "out"), "--bands", "-2"]) == 1


def test_full_run(tmp_path):
    scene = textured_scene(700, 1200, seed=31, sigma=2.5)
    input_dir = tmp_path / "images"
    input_dir.mkdir()
    for i, (tx, ty) in enumerate([(100, 100), (300, 130), (500, 110)]):
        cv2.imwrite(str(input_dir / f"img_{i:03d}.png"), view_of(scene, translation(tx, ty)))

    output_dir = tmp_path / "out"
    code = main(["-i", str(input_dir), "-o", str(output_dir), "--detector", "sift", "--no-undistort"])

    assert code == 0
    mosaic = cv2.imread(str(output_dir / "mosaic_0.png"))
    assert mosaic is not None
    assert mosaic.shape[1] > 640


def test_config_file_compositing_is_kept_without_blend_flags(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("compositing: direct_copy\nseam: graph_cut\nbands: 4\n")
    assert parse("-c", str(path)).compositing == CompositingMode.DIRECT_COPY
    assert parse("-c", str(path), "--graph-cut").compositing == CompositingMode.MULTI_BAND
