from __future__ import annotations

import dataclasses

import pytest

import salesflow.core.startup as startup_module


def test_startup_tolerates_unreachable_database_outside_production(monkeypatch, container):
    monkeypatch.setattr(startup_module, "verify_database_connection", lambda engine: False)

    startup_module.validate_startup_config(container)


def test_startup_raises_in_production_when_database_unreachable(monkeypatch, container):
    container.config = dataclasses.replace(container.config, ENV="production", COMPLETION_API_KEY="key")
    monkeypatch.setattr(startup_module, "verify_database_connection", lambda engine: False)

    with pytest.raises(RuntimeError, match="Startup connectivity check failed"):
        startup_module.validate_startup_config(container)


def test_bootstrap_creates_tables(monkeypatch, container):
    created = []
    monkeypatch.setattr(startup_module, "configure_logging", lambda config: None)
    monkeypatch.setattr(startup_module, "init_db", lambda engine: created.append(engine))

    startup_module.bootstrap(container)

    assert created == [container.database_engine()]
