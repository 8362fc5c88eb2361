"""Read check: serializable or linearizable read of a well-known key against every endpoint."""

from __future__ import annotations

import time

from etcd_diagnosis.core.config import GlobalConfig
from etcd_diagnosis.core.models import ReadCheckResult, ReadEntry
from etcd_diagnosis.diagnostics.common import CHECK_ERRORS, SUCCESSFUL, resolve_or_report
from etcd_diagnosis.providers.etcd_provider import read

HEALTH_KEY = "health"
SLOW_READ_MS = 100.0


class ReadPlugin:
    def __init__(self, cfg: GlobalConfig, linearizable: bool = False, key: str = HEALTH_KEY) -> None:
        self.cfg = cfg
        self.linearizable = linearizable
        self.key = key

    def name(self) -> str:
        return "Linearizable read" if self.linearizable else "Serializable read"

    def diagnose(self) -> ReadCheckResult:
        result = ReadCheckResult(name=self.name(), serializable=not self.linearizable, key=self.key)
        eps = resolve_or_report(self.cfg, result.summary)
        if eps is None:
            return result

        for ep in eps:
            start = time.monotonic()
            try:
                resp = read(self.cfg, [ep], self.key, serializable=not self.linearizable)
            except CHECK_ERRORS as e:
                result.reads.append(ReadEntry(endpoint=ep, error=str(e)))
                result.summary.append(f"failed to read {self.key!r} from {ep}: {e}")
                continue
            took_ms = round((time.monotonic() - start) * 1000.0, 3)
            result.reads.append(
                ReadEntry(endpoint=ep, took_ms=took_ms, revision=resp.header.revision, count=resp.count)
            )
            if took_ms > SLOW_READ_MS:
                result.summary.append(f"read from {ep} took {took_ms:.1f}ms (> {SLOW_READ_MS:.0f}ms)")

        if not result.summary:
            result.summary.append(SUCCESSFUL)
        return result
