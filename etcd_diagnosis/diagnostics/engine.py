from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from etcd_diagnosis.core.models import DiagnosisReport, PluginFailure
from etcd_diagnosis.diagnostics.base import Plugin
from etcd_diagnosis.dump import render_report, render_result
from etcd_diagnosis.storage.local_store import REPORT_FILE_NAME, ReportError, ReportWriter

logger = logging.getLogger(__name__)

SEPARATOR = "-" * 57


def _plugin_name(plugin: Plugin) -> str:
    try:
        return str(plugin.name())
    except Exception as e:
        return f"<unnamed plugin: {e}>"


def run_plugins(input: Optional[dict], plugins: Sequence[Plugin]) -> DiagnosisReport:
    """
    Run every plugin once, in order, one at a time, and collect their results.

    Guarantees:
    - `report.results` has exactly one entry per plugin, in the order given
    - a result that fails to serialize is logged and kept; the run continues
    - a plugin that raises is recorded as a `PluginFailure` entry
    """
    rp = DiagnosisReport(input=input)
    total = len(plugins)

    for i, plugin in enumerate(plugins):
        name = _plugin_name(plugin)
        logger.info(SEPARATOR)
        logger.info('Running "%s" (%d/%d)...', name, i + 1, total)

        result: Any
        try:
            result = plugin.diagnose()
        except Exception as e:
            logger.error('Plugin "%s" failed: %s', name, e)
            result = PluginFailure(name=name, error=str(e))
        rp.results.append(result)

        try:
            rendered = render_result(result)
        except (TypeError, ValueError) as e:
            logger.error('Failed to marshal result for plugin "%s": %s', name, e)
            continue
        logger.info("%s", rendered)

    return rp


def diagnose(
    input: Optional[dict],
    plugins: Sequence[Plugin],
    *,
    writer: Optional[ReportWriter] = None,
) -> DiagnosisReport:
    """
    Run all plugins and persist the aggregate report.

    Raises ReportError when the aggregate report cannot be serialized or written; the caller
    owns the exit policy.
    """
    rp = run_plugins(input, plugins)

    try:
        body = render_report(rp)
    except (TypeError, ValueError) as e:
        raise ReportError(f"Failed to marshal the report: {e}") from e

    writer = writer or ReportWriter()
    path = writer.write(body)
    logger.info("Diagnosis report written to %s", path)
    return rp


__all__ = ["REPORT_FILE_NAME", "diagnose", "run_plugins"]
