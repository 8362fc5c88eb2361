from __future__ import annotations

import dns.resolver
import pytest


class _FakeResolver:
    def __init__(self, answers):
        self.answers = answers
        self.queried = []

    def lookup(self, name):
        self.queried.append(name)
        result = self.answers.get(name)
        if isinstance(result, Exception):
            raise result
        return result


def test_get_client_builds_https_then_http_endpoints() -> None:
    from etcd_diagnosis.providers.srv_provider import get_client

    r = _FakeResolver(
        {
            "_etcd-client-ssl._tcp.example.com": [("a.example.com", 2379)],
            "_etcd-client._tcp.example.com": [("b.example.com", 2379), ("fd00::1", 2379)],
        }
    )

    srvs = get_client("etcd-client", "example.com", resolver=r)
    assert srvs.endpoints == [
        "https://a.example.com:2379",
        "http://b.example.com:2379",
        "http://[fd00::1]:2379",
    ]


def test_get_client_service_name_suffix() -> None:
    from etcd_diagnosis.providers.srv_provider import get_client

    r = _FakeResolver(
        {
            "_etcd-client-ssl-prod._tcp.example.com": [("a", 2379)],
            "_etcd-client-prod._tcp.example.com": dns.resolver.NXDOMAIN(),
        }
    )

    assert get_client("etcd-client", "example.com", "prod", resolver=r).endpoints == ["https://a:2379"]
    assert r.queried == ["_etcd-client-ssl-prod._tcp.example.com", "_etcd-client-prod._tcp.example.com"]


def test_get_client_fails_only_when_both_lookups_fail() -> None:
    from etcd_diagnosis.providers.srv_provider import SRVLookupError, get_client

    r = _FakeResolver(
        {
            "_etcd-client-ssl._tcp.example.com": dns.resolver.NXDOMAIN(),
            "_etcd-client._tcp.example.com": dns.resolver.NoAnswer(),
        }
    )

    with pytest.raises(SRVLookupError, match="dns lookup errors"):
        get_client("etcd-client", "example.com", resolver=r)
