"""Endpoint status check: leader agreement, alarms, db size vs quota, apply lag."""

from __future__ import annotations

from typing import Dict, List

from etcd_diagnosis.core.config import GlobalConfig
from etcd_diagnosis.core.models import EndpointStatusCheckResult, EndpointStatusEntry, StatusResponse
from etcd_diagnosis.diagnostics.common import CHECK_ERRORS, SUCCESSFUL, resolve_or_report
from etcd_diagnosis.providers.etcd_provider import endpoint_status

# Warn once the backend reaches this share of --etcd-storage-quota-bytes.
DB_QUOTA_WARN_RATIO = 0.8
# etcd rejects new proposals once committed - applied exceeds this gap.
MAX_APPLY_GAP = 5000


def _check_status(ep: str, st: StatusResponse, quota_bytes: int) -> List[str]:
    out: List[str] = []
    for err in st.errors:
        out.append(f"endpoint {ep} reports error: {err}")
    if st.leader == 0:
        out.append(f"endpoint {ep} has no leader")
    if quota_bytes > 0 and st.db_size >= quota_bytes * DB_QUOTA_WARN_RATIO:
        pct = 100.0 * st.db_size / quota_bytes
        out.append(f"endpoint {ep} db size {st.db_size} bytes is {pct:.1f}% of the quota ({quota_bytes} bytes)")
    gap = st.raft_index - st.raft_applied_index
    if gap > MAX_APPLY_GAP:
        out.append(f"endpoint {ep} applied index lags the committed index by {gap} entries")
    return out


class EndpointStatusPlugin:
    def __init__(self, cfg: GlobalConfig) -> None:
        self.cfg = cfg

    def name(self) -> str:
        return "Endpoint status"

    def diagnose(self) -> EndpointStatusCheckResult:
        result = EndpointStatusCheckResult(name=self.name())
        eps = resolve_or_report(self.cfg, result.summary)
        if eps is None:
            return result

        leaders: Dict[int, List[str]] = {}
        for ep in eps:
            try:
                st = endpoint_status(self.cfg, ep)
            except CHECK_ERRORS as e:
                result.statuses.append(EndpointStatusEntry(endpoint=ep, error=str(e)))
                result.summary.append(f"failed to get status from {ep}: {e}")
                continue
            result.statuses.append(EndpointStatusEntry(endpoint=ep, status=st))
            result.summary.extend(_check_status(ep, st, self.cfg.db_quota_bytes))
            if st.leader:
                leaders.setdefault(st.leader, []).append(ep)

        if len(leaders) > 1:
            views = "; ".join(f"{lid:x} <- {', '.join(seen_by)}" for lid, seen_by in sorted(leaders.items()))
            result.summary.append(f"endpoints disagree on the leader: {views}")

        if not result.summary:
            result.summary.append(SUCCESSFUL)
        return result
