"""JSON dump helpers (CLI-friendly, testable).

We keep file/terminal output out of the engine; these return plain dicts and strings.
"""

from __future__ import annotations

import json
from typing import Any, Dict

from pydantic import BaseModel

from etcd_diagnosis.core.config import GlobalConfig
from etcd_diagnosis.core.models import DiagnosisReport

INDENT = "\t"


def _clean(d: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in d.items() if v not in (None, "", [], {})}


def to_jsonable(value: Any) -> Any:
    """Pydantic models become JSON-compatible dicts; everything else is handed to `json` as-is."""
    if isinstance(value, BaseModel):
        # Pydantic v2: mode="json" produces JSON-serializable types.
        return value.model_dump(mode="json", exclude_none=True)
    return value


def config_to_json_dict(cfg: GlobalConfig) -> Dict[str, Any]:
    return cfg.model_dump(mode="json")


def render_result(result: Any) -> str:
    """Serialize a single plugin result. Raises TypeError/ValueError when it is not JSON-serializable."""
    return json.dumps(to_jsonable(result), indent=INDENT)


def report_to_json_dict(report: DiagnosisReport) -> Dict[str, Any]:
    return _clean(
        {
            "input": report.input,
            "results": [to_jsonable(r) for r in report.results],
        }
    )


def render_report(report: DiagnosisReport) -> str:
    return json.dumps(report_to_json_dict(report), indent=INDENT)
