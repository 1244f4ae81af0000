"""
Report persistence for finished runs.

Each finished run is written as one JSON document keyed by test name and
creation time. Reports are never overwritten.
"""

import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)


class Reportable(Protocol):
    """Anything with a dictionary representation."""

    def to_dict(self) -> dict[str, Any]: ...


class ReportPersistenceError(Exception):
    """Raised when a report could not be written."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


def _safe_name(name: str) -> str:
    """Make a test name usable as part of a file name."""
    return re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("_") or "test"


class ReportWriter:
    """
    Writes run results as JSON files.

    File names follow ``<prefix>-<testName>-<epochMillis>.json``. When a
    file with that key already exists the millisecond component is bumped
    until a free key is found.
    """

    def __init__(
        self,
        output_dir: Path | str = "test-output",
        prefix: str = "perf-test",
        max_attempts: int = 1000,
    ):
        """Initialize the writer.

        Args:
            output_dir: Directory for report files, created if absent
            prefix: File name prefix
            max_attempts: Key collisions tolerated before giving up
        """
        self.output_dir = Path(output_dir)
        self.prefix = prefix
        self.max_attempts = max_attempts

    def report_path(self, test_name: str, epoch_millis: int) -> Path:
        """Path for a report key."""
        return self.output_dir / (
            f"{self.prefix}-{_safe_name(test_name)}-{epoch_millis}.json"
        )

    def save(self, result: Reportable, test_name: Optional[str] = None) -> Path:
        """Persist a result.

        Args:
            result: TestResult, LoadTestResult or StressTestResult
            test_name: Name for the key, taken from the result when omitted

        Returns:
            Path of the written report

        Raises:
            ReportPersistenceError: If the report could not be written
        """
        data = result.to_dict()
        name = test_name or data.get("test_name") or "test"
        payload = json.dumps(data, indent=2, default=str)

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ReportPersistenceError(
                f"Cannot create report directory {self.output_dir}: {e}"
            ) from e

        epoch_millis = int(time.time() * 1000)
        for attempt in range(self.max_attempts):
            path = self.report_path(name, epoch_millis + attempt)
            try:
                with path.open("x", encoding="utf-8") as f:
                    f.write(payload)
            except FileExistsError:
                continue
            except OSError as e:
                raise ReportPersistenceError(
                    f"Failed to write report {path}: {e}", path
                ) from e

            logger.info("Saved report for %s to %s", name, path)
            return path

        raise ReportPersistenceError(
            f"No free report key for {name} after {self.max_attempts} attempts"
        )

    def load_report(self, path: Path | str) -> dict[str, Any]:
        """Load a report from a JSON file.

        Args:
            path: Path to JSON report file

        Returns:
            Report dictionary
        """
        return json.loads(Path(path).read_text(encoding="utf-8"))
