from __future__ import annotations

from pathlib import Path

import pytest

import wirecheck
from wirecheck import reporting
from wirecheck.core.loader import load_spec
from wirecheck.core.models import TestResult, TestRun

PLUGIN_SOURCE = '''
from wirecheck.reporting import JsonReporter, register_reporter


def register() -> None:
    register_reporter("compact-json", lambda **options: JsonReporter(pretty=False, **options))
'''

EXAMPLES = Path(__file__).resolve().parents[1] / "examples"


def test_plugins_register_reporters(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "wirecheck_sample_plugin.py").write_text(PLUGIN_SOURCE, encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))
    monkeypatch.setattr(reporting, "_FACTORIES", dict(reporting._FACTORIES))
    monkeypatch.setenv("WIRECHECK_PLUGINS", " wirecheck_sample_plugin , ")
    wirecheck._load_plugins()
    assert "compact-json" in reporting.available_reporters()
    assert isinstance(reporting.create_reporter("compact-json", echo=False), reporting.JsonReporter)


def test_missing_plugin_module_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WIRECHECK_PLUGINS", "wirecheck_no_such_plugin")
    with pytest.raises(ModuleNotFoundError):
        wirecheck._load_plugins()


def test_example_markdown_plugin(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.syspath_prepend(str(EXAMPLES / "plugins"))
    monkeypatch.setattr(reporting, "_FACTORIES", dict(reporting._FACTORIES))
    monkeypatch.setenv("WIRECHECK_PLUGINS", "markdown_reporter")
    wirecheck._load_plugins()
    assert "markdown" in reporting.available_reporters()
    reporter = reporting.create_reporter("markdown", echo=False)
    run = TestRun(run_id="run-md", planned=1)
    reporter.on_run_start(run)
    result = TestResult(id="rest.GET./.ok", name="ok", protocol="rest", status="passed", duration_ms=3.0)
    run.append(result)
    reporter.on_test_complete(result)
    run.seal(3.0)
    reporter.on_run_complete(run)
    output = reporter.get_output()
    assert output.startswith("## wirecheck run-md")
    assert "| ✅ | ok | rest | 3ms |" in output
    assert output.endswith("**1 passed, 0 failed, 0 skipped**")


def test_example_spec_is_valid() -> None:
    spec = load_spec(str(EXAMPLES / "specs" / "demo.yaml"))
    assert spec.name == "demo service"
    assert [case.protocol for case in spec.cases] == ["rest", "rest", "rest", "rpc", "batch", "pipeline", "tool"]
