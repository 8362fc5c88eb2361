from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from etcd_diagnosis.core.config import GlobalConfig
from etcd_diagnosis.diagnostics.base import Plugin


@dataclass
class PluginRegistry:
    plugins: List[Plugin] = field(default_factory=list)

    def register(self, plugin: Plugin) -> None:
        self.plugins.append(plugin)

    def names(self) -> List[str]:
        return [p.name() for p in self.plugins]


def default_registry(cfg: GlobalConfig) -> PluginRegistry:
    """
    The built-in check sequence, in run order.

    Plugins are constructed per run because each one carries the run's GlobalConfig.
    """
    from etcd_diagnosis.diagnostics.epstatus import EndpointStatusPlugin
    from etcd_diagnosis.diagnostics.membership import MembershipPlugin
    from etcd_diagnosis.diagnostics.metrics import MetricsPlugin
    from etcd_diagnosis.diagnostics.read import ReadPlugin

    reg = PluginRegistry()
    reg.register(MembershipPlugin(cfg))
    reg.register(EndpointStatusPlugin(cfg))
    reg.register(ReadPlugin(cfg, linearizable=False))
    reg.register(ReadPlugin(cfg, linearizable=True))
    reg.register(MetricsPlugin(cfg))
    return reg
