"""DNS SRV discovery of etcd client endpoints.

Queries `_etcd-client-ssl._tcp.<domain>` (https) and `_etcd-client._tcp.<domain>` (http).
A non-empty service name is appended as a suffix: `_etcd-client-ssl-<name>._tcp.<domain>`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Tuple

import dns.exception
import dns.resolver

logger = logging.getLogger(__name__)

CLIENT_SERVICE = "etcd-client"


class SRVLookupError(RuntimeError):
    pass


@dataclass
class SRVClients:
    endpoints: List[str] = field(default_factory=list)
    records: List[Tuple[str, int]] = field(default_factory=list)


class SRVResolver(Protocol):
    def lookup(self, name: str) -> List[Tuple[str, int]]: ...


class DefaultSRVResolver:
    def __init__(self, lifetime: Optional[float] = None) -> None:
        self.lifetime = lifetime

    def lookup(self, name: str) -> List[Tuple[str, int]]:
        answers = dns.resolver.resolve(name, "SRV", lifetime=self.lifetime)
        return [(str(r.target).rstrip("."), int(r.port)) for r in answers]


def get_srv_resolver() -> SRVResolver:
    """Seam for swapping resolvers in tests."""
    return DefaultSRVResolver()


def srv_service(service: str, service_name: str, scheme: str) -> str:
    if scheme == "https":
        service = f"{service}-ssl"
    if service_name:
        return f"{service}-{service_name}"
    return service


def _join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def get_client(
    service: str, domain: str, service_name: str = "", *, resolver: Optional[SRVResolver] = None
) -> SRVClients:
    """
    Resolve client endpoints for `domain`.

    Fails only when both the https and the http lookups fail.
    """
    resolver = resolver or get_srv_resolver()
    out = SRVClients()
    errors: List[str] = []

    for scheme in ("https", "http"):
        name = f"_{srv_service(service, service_name, scheme)}._tcp.{domain}"
        try:
            records = resolver.lookup(name)
        except dns.exception.DNSException as e:
            logger.debug("SRV lookup %s failed: %s", name, e)
            errors.append(f"{name}: {e}")
            continue
        for host, port in records:
            out.endpoints.append(f"{scheme}://{_join_host_port(host, port)}")
            out.records.append((host, port))

    if len(errors) == 2:
        raise SRVLookupError(f"dns lookup errors: {errors[0]} and {errors[1]}")
    return out
