"""
Memory tracking for the blending stage
"""

import gc
import logging
from contextlib import contextmanager
from typing import Dict, Optional

import psutil

logger = logging.getLogger(__name__)

_GB = 1024 * 1024 * 1024


class MemoryManager:
    """Track process memory while mosaics are warped and blended"""

    def __init__(self, memory_limit_gb: float = 16.0):
        """
        Initialize memory manager

        Args:
            memory_limit_gb: Soft memory limit in GB, used for warnings only
        """
        self.memory_limit_gb = memory_limit_gb
        self._peak_usage_gb = 0.0
        self._checkpoints: Dict[str, float] = {}
        logger.debug(f"Memory manager initialized (limit: {memory_limit_gb} GB)")

    def get_memory_usage(self) -> float:
        """
        Get current memory usage in GB

        Returns:
            Resident set size of this process in GB
        """
        try:
            usage_gb = psutil.Process().memory_info().rss / _GB
        except psutil.Error as e:
            logger.warning(f"Could not get memory usage: {e}")
            return 0.0

        if usage_gb > self._peak_usage_gb:
            self._peak_usage_gb = usage_gb
        return usage_gb

    def get_available_memory(self) -> float:
        """Get available system memory in GB"""
        try:
            return psutil.virtual_memory().available / _GB
        except psutil.Error as e:
            logger.warning(f"Could not get available memory: {e}")
            return self.memory_limit_gb

    def get_peak_usage(self) -> float:
        """Get peak memory usage in GB"""
        return self._peak_usage_gb

    def checkpoint(self, name: str):
        """Record the current usage under ``name``"""
        usage = self.get_memory_usage()
        self._checkpoints[name] = usage
        logger.debug(f"Memory checkpoint '{name}': {usage:.2f} GB")

    def get_checkpoint_diff(self, name: str) -> Optional[float]:
        """
        Get memory difference since checkpoint

        Returns:
            Memory difference in GB, or None if checkpoint doesn't exist
        """
        if name not in self._checkpoints:
            return None
        return self.get_memory_usage() - self._checkpoints[name]

    def estimate_canvas_gb(self, width: int, height: int, channels: int = 3) -> float:
        """Size in GB of a uint8 canvas of the given dimensions"""
        return width * height * channels / _GB

    def log_memory_status(self, context: str = ""):
        """Log current memory status"""
        usage = self.get_memory_usage()
        available = self.get_available_memory()
        context_str = f" ({context})" if context else ""
        logger.info(
            f"Memory status{context_str}: "
            f"used={usage:.2f}GB, available={available:.2f}GB, "
            f"peak={self.get_peak_usage():.2f}GB"
        )
        if usage > self.memory_limit_gb:
            logger.warning(f"Memory usage {usage:.2f}GB exceeds limit of {self.memory_limit_gb}GB")

    def force_gc(self):
        """Force garbage collection and log results"""
        before = self.get_memory_usage()
        gc.collect()
        freed = before - self.get_memory_usage()
        if freed > 0.01:
            logger.debug(f"GC freed {freed * 1024:.1f} MB")

    @contextmanager
    def track_operation(self, name: str):
        """
        Context manager to track memory usage of an operation

        Example:
            with memory_manager.track_operation("blend_sub_mosaic"):
                blender.blend_sub_mosaic(sub_mosaic)
        """
        self.checkpoint(f"{name}_start")
        try:
            yield
        finally:
            diff = self.get_checkpoint_diff(f"{name}_start") or 0.0
            logger.debug(f"Operation '{name}': memory change {diff:+.2f} GB "
                         f"(peak {self._peak_usage_gb:.2f} GB)")
