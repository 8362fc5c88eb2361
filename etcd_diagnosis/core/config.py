"""Run-wide configuration.

`GlobalConfig` is built once at process start (env defaults, then CLI flags) and passed
explicitly to the resolver, the engine and every plugin. Nothing mutates it afterwards.
"""

from __future__ import annotations

import os
import re
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_ENDPOINTS = ["127.0.0.1:2379"]
DEFAULT_DB_QUOTA_BYTES = 2 * 1024 * 1024 * 1024

ENV_PREFIX = "ETCD_DIAGNOSIS_"


class GlobalConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    # Endpoint selection
    endpoints: List[str] = Field(default_factory=lambda: list(DEFAULT_ENDPOINTS))
    use_cluster_endpoints: bool = False
    dns_domain: str = ""
    dns_service: str = ""
    insecure_discovery: bool = True

    # Transport security
    insecure: bool = True
    insecure_skip_verify: bool = False
    cert_file: str = ""
    key_file: str = ""
    ca_file: str = ""

    # Auth (password is never written to the report)
    username: str = ""
    password: str = Field(default="", exclude=True, repr=False)

    # Timeouts, in seconds
    dial_timeout: float = 2.0
    command_timeout: float = 5.0
    keepalive_time: float = 2.0
    keepalive_timeout: float = 5.0

    db_quota_bytes: int = DEFAULT_DB_QUOTA_BYTES
    print_version: bool = False

    # Offline analysis
    offline: bool = False
    data_dir: str = ""

    @property
    def has_client_cert(self) -> bool:
        return bool(self.cert_file and self.key_file)


def _env(name: str) -> Optional[str]:
    raw = (os.getenv(ENV_PREFIX + name) or "").strip()
    return raw or None


def _env_bool(name: str, default: bool) -> bool:
    raw = (_env(name) or "").lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 1e-3, "us": 1e-6, "µs": 1e-6, "ns": 1e-9}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(h|ms|us|µs|ns|m|s)")


def parse_duration(value: str) -> float:
    """
    Parse '2s', '500ms', '1m30s' (or bare seconds like '2.5') into seconds.

    Raises ValueError on anything else.
    """
    raw = (value or "").strip()
    if not raw:
        raise ValueError("empty duration")
    try:
        return float(raw)
    except ValueError:
        pass

    pos = 0
    total = 0.0
    for m in _DURATION_PART.finditer(raw):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
        pos = m.end()
    if pos != len(raw):
        raise ValueError(f"invalid duration: {value!r}")
    return total


def _env_duration(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return parse_duration(raw)
    except ValueError:
        return default


def _parse_csv(value: str) -> List[str]:
    return [x.strip() for x in (value or "").split(",") if x.strip()]


def split_user(user: str, password: str = "") -> Tuple[str, str]:
    """
    Accept etcdctl-style `user[:password]`.

    An explicit password wins; a password embedded in `user` is only used when none was given.
    """
    if not user:
        return "", password
    name, _, embedded = user.partition(":")
    if password:
        return name, password
    return name, embedded


def load_global_config() -> GlobalConfig:
    """
    Load configuration defaults from ETCD_DIAGNOSIS_* environment variables.

    CLI flags are layered on top of this by `main.py`.
    """
    endpoints = _parse_csv(_env("ENDPOINTS") or "") or list(DEFAULT_ENDPOINTS)
    username, password = split_user(_env("USER") or "", _env("PASSWORD") or "")

    return GlobalConfig(
        endpoints=endpoints,
        use_cluster_endpoints=_env_bool("CLUSTER", False),
        dns_domain=_env("DISCOVERY_SRV") or "",
        dns_service=_env("DISCOVERY_SRV_NAME") or "",
        insecure_discovery=_env_bool("INSECURE_DISCOVERY", True),
        insecure=_env_bool("INSECURE_TRANSPORT", True),
        insecure_skip_verify=_env_bool("INSECURE_SKIP_TLS_VERIFY", False),
        cert_file=_env("CERT") or "",
        key_file=_env("KEY") or "",
        ca_file=_env("CACERT") or "",
        username=username,
        password=password,
        dial_timeout=_env_duration("DIAL_TIMEOUT", 2.0),
        command_timeout=_env_duration("COMMAND_TIMEOUT", 5.0),
        keepalive_time=_env_duration("KEEPALIVE_TIME", 2.0),
        keepalive_timeout=_env_duration("KEEPALIVE_TIMEOUT", 5.0),
        db_quota_bytes=_env_int("STORAGE_QUOTA_BYTES", DEFAULT_DB_QUOTA_BYTES),
        offline=_env_bool("OFFLINE", False),
        data_dir=_env("DATA_DIR") or "",
    )
