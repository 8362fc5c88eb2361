"""etcd diagnosis toolkit.

Online path: resolve endpoints, run diagnostic plugins, write one JSON report.
Offline path: read a stopped member's bbolt backend and print per-key revision stats.
"""

__version__ = "0.1.0"
