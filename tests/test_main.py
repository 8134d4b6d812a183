import os
import sys

import structlog

import main
from match_engine.api import endpoints


def test_api_module_configures_json_logging():
    assert endpoints.app is not None
    assert structlog.is_configured()
    assert isinstance(structlog.get_config()["processors"][-1], structlog.processors.JSONRenderer)


def test_log_level_is_exported_for_workers(monkeypatch):
    calls = {}
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    monkeypatch.setattr(main.uvicorn, "run", lambda app, **kwargs: calls.update(app=app, **kwargs))
    monkeypatch.setattr(sys, "argv", ["main.py", "--log-level", "warning", "--workers", "3"])

    main.main()

    assert os.environ["LOG_LEVEL"] == "WARNING"
    assert calls["app"] == "match_engine.api.endpoints:app"
    assert calls["workers"] == 3
    assert calls["log_level"] == "warning"


def test_reload_forces_single_worker(monkeypatch):
    calls = {}
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    monkeypatch.setattr(main.uvicorn, "run", lambda app, **kwargs: calls.update(kwargs))
    monkeypatch.setattr(sys, "argv", ["main.py", "--reload", "--workers", "4"])

    main.main()

    assert calls["workers"] == 1
    assert calls["reload"] is True
