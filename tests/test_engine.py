from __future__ import annotations

import json
import logging

import pytest


class _Plugin:
    def __init__(self, name, result=None, exc=None):
        self._name = name
        self._result = result
        self._exc = exc
        self.calls = 0

    def name(self):
        return self._name

    def diagnose(self):
        self.calls += 1
        if self._exc is not None:
            raise self._exc
        return self._result


def test_runs_each_plugin_once_in_order() -> None:
    from etcd_diagnosis.diagnostics.engine import run_plugins

    plugins = [_Plugin("a", {"n": 1}), _Plugin("b", {"n": 2}), _Plugin("c", {"n": 3})]
    rp = run_plugins({"x": 1}, plugins)

    assert rp.input == {"x": 1}
    assert rp.results == [{"n": 1}, {"n": 2}, {"n": 3}]
    assert [p.calls for p in plugins] == [1, 1, 1]


def test_progress_is_logged(caplog) -> None:
    from etcd_diagnosis.diagnostics.engine import SEPARATOR, run_plugins

    caplog.set_level(logging.INFO, logger="etcd_diagnosis.diagnostics.engine")
    run_plugins(None, [_Plugin("Membership", {"ok": True}), _Plugin("Metrics", {"ok": True})])

    assert SEPARATOR in caplog.text
    assert 'Running "Membership" (1/2)...' in caplog.text
    assert 'Running "Metrics" (2/2)...' in caplog.text


def test_unserializable_result_is_logged_and_kept(caplog) -> None:
    from etcd_diagnosis.diagnostics.engine import run_plugins

    caplog.set_level(logging.INFO, logger="etcd_diagnosis.diagnostics.engine")
    bad = {1, 2}
    rp = run_plugins(None, [_Plugin("bad", bad), _Plugin("good", {"ok": True})])

    assert rp.results == [bad, {"ok": True}]
    assert 'Failed to marshal result for plugin "bad"' in caplog.text
    assert 'Running "good" (2/2)...' in caplog.text


def test_raising_plugin_is_recorded_and_run_continues() -> None:
    from etcd_diagnosis.core.models import PluginFailure
    from etcd_diagnosis.diagnostics.engine import run_plugins

    after = _Plugin("after", {"ok": True})
    rp = run_plugins(None, [_Plugin("boom", exc=RuntimeError("kaboom")), after])

    assert rp.results[0] == PluginFailure(name="boom", error="kaboom")
    assert rp.results[1] == {"ok": True}
    assert after.calls == 1


def test_no_plugins_yields_empty_results(tmp_path) -> None:
    from etcd_diagnosis.diagnostics.engine import diagnose
    from etcd_diagnosis.storage.local_store import ReportWriter

    rp = diagnose({"endpoints": []}, [], writer=ReportWriter(base_dir=str(tmp_path)))
    assert rp.results == []

    doc = json.loads((tmp_path / "etcd_diagnosis_report.json").read_text())
    assert doc == {"input": {"endpoints": []}}


def test_report_round_trips_through_file(tmp_path, cfg) -> None:
    from etcd_diagnosis.core.models import MembershipCheckResult
    from etcd_diagnosis.diagnostics.engine import REPORT_FILE_NAME, diagnose
    from etcd_diagnosis.dump import config_to_json_dict
    from etcd_diagnosis.storage.local_store import ReportWriter

    plugins = [
        _Plugin("Membership", MembershipCheckResult(name="Membership", summary=["Successful"])),
        _Plugin("custom", {"latency_ms": 1.5}),
    ]
    diagnose(config_to_json_dict(cfg), plugins, writer=ReportWriter(base_dir=str(tmp_path)))

    body = (tmp_path / REPORT_FILE_NAME).read_text()
    assert "\n\t" in body
    doc = json.loads(body)
    assert doc["input"] == cfg.model_dump(mode="json")
    assert len(doc["results"]) == 2
    assert doc["results"][0] == {"name": "Membership", "summary": ["Successful"], "member_lists": []}
    assert doc["results"][1] == {"latency_ms": 1.5}


def test_report_never_contains_password(tmp_path) -> None:
    from etcd_diagnosis.core.config import GlobalConfig
    from etcd_diagnosis.diagnostics.engine import diagnose
    from etcd_diagnosis.dump import config_to_json_dict
    from etcd_diagnosis.storage.local_store import ReportWriter

    cfg = GlobalConfig(username="root", password="hunter2")
    diagnose(config_to_json_dict(cfg), [], writer=ReportWriter(base_dir=str(tmp_path)))

    body = (tmp_path / "etcd_diagnosis_report.json").read_text()
    assert "hunter2" not in body
    assert json.loads(body)["input"]["username"] == "root"


def test_previous_report_is_replaced(tmp_path) -> None:
    from etcd_diagnosis.diagnostics.engine import diagnose
    from etcd_diagnosis.storage.local_store import ReportWriter

    target = tmp_path / "etcd_diagnosis_report.json"
    target.write_text("stale")

    diagnose(None, [_Plugin("a", {"n": 1})], writer=ReportWriter(base_dir=str(tmp_path)))
    assert json.loads(target.read_text()) == {"results": [{"n": 1}]}
    assert [p.name for p in tmp_path.iterdir()] == ["etcd_diagnosis_report.json"]


def test_unserializable_report_raises_and_writes_nothing(tmp_path) -> None:
    from etcd_diagnosis.diagnostics.engine import diagnose
    from etcd_diagnosis.storage.local_store import ReportError, ReportWriter

    with pytest.raises(ReportError, match="Failed to marshal the report"):
        diagnose(None, [_Plugin("bad", {1, 2})], writer=ReportWriter(base_dir=str(tmp_path)))
    assert not (tmp_path / "etcd_diagnosis_report.json").exists()


def test_write_failure_raises_report_error(tmp_path) -> None:
    from etcd_diagnosis.diagnostics.engine import diagnose
    from etcd_diagnosis.storage.local_store import ReportError, ReportWriter

    missing = tmp_path / "no" / "such" / "dir"
    with pytest.raises(ReportError, match="Failed to write the report"):
        diagnose(None, [_Plugin("a", {"n": 1})], writer=ReportWriter(base_dir=str(missing)))
