from __future__ import annotations

import runpy

import pytest

import vendor_ingest.cli as cli_mod


def test_module_entrypoint_runs_cli_app(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []
    monkeypatch.setattr(cli_mod, "app", lambda: calls.append("app"))

    runpy.run_module("vendor_ingest", run_name="__main__")

    assert calls == ["app"]


def test_importing_entrypoint_module_does_not_run_app(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []
    monkeypatch.setattr(cli_mod, "app", lambda: calls.append("app"))

    runpy.run_module("vendor_ingest.__main__", run_name="vendor_ingest.__main__")

    assert calls == []
