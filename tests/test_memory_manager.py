"""Tests for memory tracking"""

import logging

from mosaic2d.utils.memory_manager import MemoryManager


def test_peak_follows_usage():
    manager = MemoryManager()
    assert manager.get_peak_usage() == 0.0
    usage = manager.get_memory_usage()
    assert usage > 0
    assert manager.get_peak_usage() >= usage


def test_status_reports_peak(caplog):
    manager = MemoryManager()
    with caplog.at_level(logging.INFO, logger="mosaic2d.utils.memory_manager"):
        manager.log_memory_status("blend")
    assert "Memory status (blend)" in caplog.text
    assert f"peak={manager.get_peak_usage():.2f}GB" in caplog.text


def test_track_operation_records_checkpoint():
    manager = MemoryManager()
    with manager.track_operation("warp"):
        pass
    assert manager.get_checkpoint_diff("warp_start") is not None
    assert manager.get_checkpoint_diff("missing") is None
