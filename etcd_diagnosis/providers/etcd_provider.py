"""etcd client factory and the read-only operations plugins are built on.

Talks to the etcd v3 JSON gateway (`POST /v3/...`) that every etcd member serves on its
client URLs, so only `requests` is needed on the wire.

Every operation follows the same shape:
- build a `ClientSpec` from the GlobalConfig + the endpoints to use
- acquire a client and a command deadline
- perform exactly one logical call
- release both on every exit path (context managers)
"""

from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import urljoin

import requests

from etcd_diagnosis.core.config import GlobalConfig
from etcd_diagnosis.core.models import MemberListResponse, RangeResponse, StatusResponse

logger = logging.getLogger(__name__)


class EtcdRequestError(RuntimeError):
    """A request to the cluster failed (transport, HTTP or gateway error)."""


class DeadlineExceeded(EtcdRequestError):
    def __init__(self, what: str = "request") -> None:
        super().__init__(f"{what}: context deadline exceeded")


@dataclass(frozen=True)
class ClientSpec:
    endpoints: Tuple[str, ...]
    dial_timeout: float = 2.0
    insecure: bool = True
    insecure_skip_verify: bool = False
    cert_file: str = ""
    key_file: str = ""
    ca_file: str = ""
    username: str = ""
    password: str = field(default="", repr=False)

    @property
    def secure(self) -> bool:
        # Any TLS material (or turning insecure transport off) switches scheme-less endpoints to https.
        return not self.insecure or bool(self.ca_file or self.cert_file)


def client_spec(gcfg: GlobalConfig, endpoints: Sequence[str]) -> ClientSpec:
    return ClientSpec(
        endpoints=tuple(endpoints),
        dial_timeout=gcfg.dial_timeout,
        insecure=gcfg.insecure,
        insecure_skip_verify=gcfg.insecure_skip_verify,
        cert_file=gcfg.cert_file,
        key_file=gcfg.key_file,
        ca_file=gcfg.ca_file,
        username=gcfg.username,
        password=gcfg.password,
    )


class Deadline:
    """Per-command time budget. Cancel releases it early; both states read as expired."""

    def __init__(self, timeout: float) -> None:
        self.timeout = float(timeout)
        self._expires_at = time.monotonic() + self.timeout
        self._cancelled = False

    def remaining(self) -> float:
        if self._cancelled:
            return 0.0
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def cancel(self) -> None:
        self._cancelled = True

    def __enter__(self) -> "Deadline":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.cancel()


def command_deadline(timeout: float) -> Deadline:
    return Deadline(timeout)


def _with_scheme(endpoint: str, secure: bool) -> str:
    ep = (endpoint or "").strip()
    if ep.startswith("http://") or ep.startswith("https://"):
        return ep.rstrip("/")
    if ep.startswith("unix://") or ep.startswith("unixs://"):
        raise EtcdRequestError(f"unsupported endpoint scheme: {ep}")
    return f"{'https' if secure else 'http'}://{ep}".rstrip("/")


def _verify_setting(spec: ClientSpec) -> Union[bool, str]:
    if spec.insecure_skip_verify:
        return False
    return spec.ca_file or True


class EtcdClient:
    """A connected handle bound to an ordered endpoint list (first reachable endpoint wins)."""

    def __init__(self, spec: ClientSpec, session: Optional[requests.Session] = None) -> None:
        if not spec.endpoints:
            raise EtcdRequestError("no endpoints provided")
        self.spec = spec
        self.base_urls = [_with_scheme(ep, spec.secure) for ep in spec.endpoints]
        self.session = session or requests.Session()
        self.session.verify = _verify_setting(spec)
        if spec.cert_file and spec.key_file:
            self.session.cert = (spec.cert_file, spec.key_file)
        self._token: Optional[str] = None

    def __enter__(self) -> "EtcdClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def _timeouts(self, deadline: Deadline, what: str) -> Tuple[float, float]:
        remaining = deadline.remaining()
        if remaining <= 0:
            raise DeadlineExceeded(what)
        return min(self.spec.dial_timeout, remaining), remaining

    def _post_one(self, base: str, path: str, body: Dict[str, Any], deadline: Deadline) -> Dict[str, Any]:
        headers = {"Authorization": self._token} if self._token else {}
        resp = self.session.post(
            urljoin(base + "/", path.lstrip("/")),
            json=body,
            headers=headers,
            timeout=self._timeouts(deadline, path),
        )
        # The read timeout only bounds each socket read; enforce the whole-command budget here.
        if deadline.expired():
            raise DeadlineExceeded(path)
        if resp.status_code >= 400:
            try:
                payload = resp.json()
            except ValueError:
                payload = {}
            msg = payload.get("message") or payload.get("error") or resp.text.strip() or resp.reason
            raise EtcdRequestError(f"{path} failed on {base}: HTTP {resp.status_code}: {msg}")
        try:
            return resp.json()
        except ValueError as e:
            raise EtcdRequestError(f"{path} returned invalid JSON from {base}: {e}") from e

    def _post(self, path: str, body: Dict[str, Any], deadline: Deadline) -> Dict[str, Any]:
        last_err: Optional[Exception] = None
        for base in self.base_urls:
            try:
                if self.spec.username and self._token is None:
                    self._authenticate(base, deadline)
                return self._post_one(base, path, body, deadline)
            except requests.exceptions.ConnectionError as e:
                # Unreachable member: fail over to the next endpoint.
                logger.debug("endpoint %s unreachable: %s", base, e)
                last_err = e
            except requests.exceptions.Timeout as e:
                raise DeadlineExceeded(path) from e
            except requests.exceptions.RequestException as e:
                raise EtcdRequestError(f"{path} failed on {base}: {e}") from e
        raise EtcdRequestError(f"{path}: all endpoints unreachable ({', '.join(self.base_urls)}): {last_err}")

    def _authenticate(self, base: str, deadline: Deadline) -> None:
        payload = self._post_one(
            base,
            "/v3/auth/authenticate",
            {"name": self.spec.username, "password": self.spec.password},
            deadline,
        )
        token = payload.get("token")
        if not token:
            raise EtcdRequestError(f"authentication against {base} returned no token")
        self._token = str(token)

    def member_list(self, deadline: Deadline, *, linearizable: bool = False) -> MemberListResponse:
        body: Dict[str, Any] = {"linearizable": True} if linearizable else {}
        return MemberListResponse.model_validate(self._post("/v3/cluster/member/list", body, deadline))

    def status(self, deadline: Deadline) -> StatusResponse:
        return StatusResponse.model_validate(self._post("/v3/maintenance/status", {}, deadline))

    def get(self, key: str, deadline: Deadline, *, serializable: bool = False) -> RangeResponse:
        body: Dict[str, Any] = {"key": base64.b64encode(key.encode("utf-8")).decode("ascii")}
        if serializable:
            body["serializable"] = True
        return RangeResponse.model_validate(self._post("/v3/kv/range", body, deadline))


def create_client(spec: ClientSpec) -> EtcdClient:
    return EtcdClient(spec)


# -----------------------------------------------------------------------------
# Operations
# -----------------------------------------------------------------------------


def member_list(
    gcfg: GlobalConfig, eps: Optional[Sequence[str]] = None, *, linearizable: bool = False
) -> MemberListResponse:
    """List cluster members. With no explicit endpoints, use the command-level endpoints (DNS SRV or flags)."""
    if not eps:
        from etcd_diagnosis.core.endpoints import endpoints_from_cmd

        eps = endpoints_from_cmd(gcfg)

    with create_client(client_spec(gcfg, eps)) as c, command_deadline(gcfg.command_timeout) as deadline:
        return c.member_list(deadline, linearizable=linearizable)


def endpoint_status(gcfg: GlobalConfig, ep: str) -> StatusResponse:
    with create_client(client_spec(gcfg, [ep])) as c, command_deadline(gcfg.command_timeout) as deadline:
        return c.status(deadline)


def read(gcfg: GlobalConfig, eps: Sequence[str], key: str, *, serializable: bool = False) -> RangeResponse:
    with create_client(client_spec(gcfg, eps)) as c, command_deadline(gcfg.command_timeout) as deadline:
        return c.get(key, deadline, serializable=serializable)


def metrics(gcfg: GlobalConfig, ep: str) -> List[str]:
    """Scrape `<ep>/metrics` and return the raw exposition lines."""
    if not ep.startswith("http://") and not ep.startswith("https://"):
        ep = "http://" + ep
    url = ep.rstrip("/") + "/metrics"

    kwargs: Dict[str, Any] = {"timeout": (gcfg.dial_timeout, gcfg.command_timeout)}
    if url.startswith("https://"):
        if gcfg.has_client_cert:
            kwargs["cert"] = (gcfg.cert_file, gcfg.key_file)
        kwargs["verify"] = False if gcfg.insecure_skip_verify else (gcfg.ca_file or True)

    try:
        resp = requests.get(url, **kwargs)
        resp.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise EtcdRequestError(f"http get failed: {e}") from e

    return resp.text.split("\n")
