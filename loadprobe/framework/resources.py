"""
Process resource sampling.

The load-generating process is sampled once per tick for CPU and resident
memory. An unreadable sample is logged and left out; it never stops a run.
"""

import logging
from datetime import datetime
from typing import Optional

import psutil

from .models import ResourceSample

logger = logging.getLogger(__name__)


class ResourceMonitor:
    """
    Takes CPU/memory snapshots of one process using psutil.
    """

    def __init__(self, pid: Optional[int] = None):
        """Initialize the monitor.

        Args:
            pid: Process to sample, the current process by default
        """
        self.pid = pid
        self._process: Optional[psutil.Process] = None

    def start(self) -> None:
        """Prime CPU accounting so the first tick measures a real interval."""
        try:
            self._process = psutil.Process(self.pid)
            self._process.cpu_percent(interval=None)
        except psutil.Error as e:
            logger.warning("Resource monitoring unavailable: %s", e)
            self._process = None

    def sample(self, tick: int) -> Optional[ResourceSample]:
        """Take one snapshot.

        Args:
            tick: Tick index within the run

        Returns:
            ResourceSample, or None when the process metrics are unreadable
        """
        if self._process is None:
            self.start()
            if self._process is None:
                return None

        try:
            cpu_percent = self._process.cpu_percent(interval=None)
            mem_info = self._process.memory_info()
        except psutil.Error as e:
            logger.warning("Resource sample %d unavailable: %s", tick, e)
            return None

        return ResourceSample(
            tick=tick,
            timestamp=datetime.utcnow(),
            cpu_percent=cpu_percent,
            memory_mb=mem_info.rss / (1024 * 1024),
        )
