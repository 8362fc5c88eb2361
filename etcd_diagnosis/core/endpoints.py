"""Endpoint resolution.

Two entry points:
- `endpoints(cfg)`: the endpoints a plugin should probe (flags, or the cluster member list in --cluster mode)
- `endpoints_from_cmd(cfg)`: the endpoints used to reach the cluster at all (DNS SRV first, then flags)
"""

from __future__ import annotations

import sys
from typing import List

from etcd_diagnosis.core.config import GlobalConfig
from etcd_diagnosis.providers import srv_provider


class NoEndpointsError(ValueError):
    def __init__(self, msg: str = "no endpoints provided") -> None:
        super().__init__(msg)


def endpoints(cfg: GlobalConfig) -> List[str]:
    if not cfg.use_cluster_endpoints:
        if not cfg.endpoints:
            raise NoEndpointsError()
        return list(cfg.endpoints)

    return endpoints_from_cluster(cfg)


def endpoints_from_cluster(cfg: GlobalConfig) -> List[str]:
    """Every member's client URLs, in member-list order. Not deduplicated."""
    from etcd_diagnosis.providers.etcd_provider import member_list

    resp = member_list(cfg, None)

    eps: List[str] = []
    for m in resp.members:
        eps.extend(m.client_urls)
    return eps


def endpoints_from_cmd(cfg: GlobalConfig) -> List[str]:
    eps = endpoints_from_dns_discovery(cfg)

    if not eps:
        eps = list(cfg.endpoints)

    if not eps:
        raise NoEndpointsError()

    return eps


def endpoints_from_dns_discovery(cfg: GlobalConfig) -> List[str]:
    if not cfg.dns_domain:
        return []

    srvs = srv_provider.get_client(srv_provider.CLIENT_SERVICE, cfg.dns_domain, cfg.dns_service)

    eps = list(srvs.endpoints)
    if cfg.insecure_discovery:
        return eps

    # strip insecure connections
    ret: List[str] = []
    for ep in eps:
        if ep.startswith("http://"):
            print(f'ignoring discovered insecure endpoint "{ep}"', file=sys.stderr)
            continue
        ret.append(ep)
    return ret
