"""Helpers shared by the built-in plugins."""

from __future__ import annotations

from typing import List, Optional

from etcd_diagnosis.core.config import GlobalConfig
from etcd_diagnosis.core.endpoints import NoEndpointsError, endpoints
from etcd_diagnosis.providers.etcd_provider import EtcdRequestError
from etcd_diagnosis.providers.srv_provider import SRVLookupError

# Failures a plugin reports in its result instead of raising.
CHECK_ERRORS = (NoEndpointsError, EtcdRequestError, SRVLookupError)

SUCCESSFUL = "Successful"


def resolve_or_report(cfg: GlobalConfig, summary: List[str]) -> Optional[List[str]]:
    """Resolve the endpoints to probe; on failure note it in `summary` and return None."""
    try:
        return endpoints(cfg)
    except CHECK_ERRORS as e:
        summary.append(f"failed to get endpoints: {e}")
        return None
