"""Membership check: every endpoint should report the same member set."""

from __future__ import annotations

from typing import FrozenSet, List

from etcd_diagnosis.core.config import GlobalConfig
from etcd_diagnosis.core.models import EndpointMembers, MembershipCheckResult
from etcd_diagnosis.diagnostics.common import CHECK_ERRORS, SUCCESSFUL, resolve_or_report
from etcd_diagnosis.providers.etcd_provider import member_list


class MembershipPlugin:
    def __init__(self, cfg: GlobalConfig) -> None:
        self.cfg = cfg

    def name(self) -> str:
        return "Membership"

    def diagnose(self) -> MembershipCheckResult:
        result = MembershipCheckResult(name=self.name())
        eps = resolve_or_report(self.cfg, result.summary)
        if eps is None:
            return result

        for ep in eps:
            try:
                resp = member_list(self.cfg, [ep])
            except CHECK_ERRORS as e:
                result.member_lists.append(EndpointMembers(endpoint=ep, error=str(e)))
                result.summary.append(f"failed to get member list from {ep}: {e}")
                continue
            result.member_lists.append(EndpointMembers(endpoint=ep, members=resp.members))

        views: List[FrozenSet[int]] = [
            frozenset(m.id for m in ml.members) for ml in result.member_lists if ml.error is None
        ]
        if len(set(views)) > 1:
            result.summary.append("member lists are inconsistent across endpoints")
        for ml in result.member_lists:
            for m in ml.members:
                if not m.name:
                    result.summary.append(f"member {m.id:x} (seen from {ml.endpoint}) has not started yet")

        if not result.summary:
            result.summary.append(SUCCESSFUL)
        return result
