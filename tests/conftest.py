"""
Pytest config.

Local imports like `import etcd_diagnosis` rely on the repo root being on sys.path. When invoking a
global `pytest` entrypoint that doesn't happen reliably during collection, so we pin it here.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from etcd_diagnosis.core.config import GlobalConfig  # noqa: E402


@pytest.fixture
def cfg() -> GlobalConfig:
    return GlobalConfig(endpoints=["127.0.0.1:2379", "127.0.0.1:22379"], dial_timeout=0.5, command_timeout=1.0)
