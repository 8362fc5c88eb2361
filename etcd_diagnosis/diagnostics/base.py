from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Plugin(Protocol):
    """
    Diagnostic plugin contract.

    Plugins are designed to be:
    - self-contained (they resolve endpoints and acquire clients themselves)
    - read-only probes (never mutate the cluster or the shared GlobalConfig)
    - order-independent relative to other plugins
    """

    def name(self) -> str:
        """Human-readable identifier, used in progress output and in the report."""

    def diagnose(self) -> Any:
        """
        Run the check and return a JSON-serializable result.

        Ordinary operational failures (unreachable endpoint, missing member) belong in the result,
        not in a raised exception.
        """
