"""Local filesystem storage for the diagnosis report."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Union

REPORT_FILE_NAME = "etcd_diagnosis_report.json"


class ReportError(OSError):
    """The aggregate report could not be serialized or written."""


@dataclass
class ReportWriter:
    """Writes the serialized report to a fixed file name, replacing any previous report."""

    base_dir: str = "."
    file_name: str = REPORT_FILE_NAME

    @property
    def path(self) -> Path:
        return Path(os.path.abspath(self.base_dir)) / self.file_name

    def write(self, body: Union[str, bytes]) -> Path:
        """
        Write `body` atomically (temp file in the same directory + rename).

        Raises ReportError on any I/O failure.
        """
        path = self.path
        payload = body.encode("utf-8") if isinstance(body, str) else body

        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.file_name}.", dir=str(path.parent))
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise ReportError(f"Failed to write the report to file {path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
        return path
