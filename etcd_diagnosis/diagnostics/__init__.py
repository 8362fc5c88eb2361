"""Diagnostic plugins and the engine that runs them.

- `base.Plugin`: the name/diagnose contract every check implements
- `registry`: the built-in check sequence
- `engine`: sequential execution + report aggregation
"""

from .base import Plugin
from .registry import PluginRegistry, default_registry

__all__ = ["Plugin", "PluginRegistry", "default_registry"]
