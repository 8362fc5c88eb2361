"""Metrics check: scrape /metrics on every endpoint and keep the families that matter for health."""

from __future__ import annotations

from typing import List

from etcd_diagnosis.core.config import GlobalConfig
from etcd_diagnosis.core.models import EndpointMetrics, MetricsCheckResult
from etcd_diagnosis.diagnostics.common import CHECK_ERRORS, SUCCESSFUL, resolve_or_report
from etcd_diagnosis.providers.etcd_provider import metrics

METRIC_FAMILIES = (
    "etcd_disk_wal_fsync_duration_seconds",
    "etcd_disk_backend_commit_duration_seconds",
    "etcd_network_peer_round_trip_time_seconds",
    "etcd_network_heartbeat_send_failures_total",
    "etcd_server_has_leader",
    "etcd_server_leader_changes_seen_total",
    "etcd_server_proposals_failed_total",
    "etcd_server_proposals_pending",
    "etcd_server_proposals_committed_total",
    "etcd_server_proposals_applied_total",
    "etcd_server_slow_apply_total",
    "etcd_server_slow_read_indexes_total",
    "etcd_mvcc_db_total_size_in_bytes",
    "etcd_mvcc_db_total_size_in_use_in_bytes",
)


def select_metrics(lines: List[str]) -> List[str]:
    out: List[str] = []
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith(METRIC_FAMILIES):
            out.append(line)
    return out


class MetricsPlugin:
    def __init__(self, cfg: GlobalConfig) -> None:
        self.cfg = cfg

    def name(self) -> str:
        return "Metrics"

    def diagnose(self) -> MetricsCheckResult:
        result = MetricsCheckResult(name=self.name())
        eps = resolve_or_report(self.cfg, result.summary)
        if eps is None:
            return result

        for ep in eps:
            try:
                lines = metrics(self.cfg, ep)
            except CHECK_ERRORS as e:
                result.endpoint_metrics.append(EndpointMetrics(endpoint=ep, error=str(e)))
                result.summary.append(f"failed to get metrics from {ep}: {e}")
                continue
            selected = select_metrics(lines)
            result.endpoint_metrics.append(EndpointMetrics(endpoint=ep, metrics=selected))
            if "etcd_server_has_leader 0" in selected:
                result.summary.append(f"endpoint {ep} reports no leader")

        if not result.summary:
            result.summary.append(SUCCESSFUL)
        return result
