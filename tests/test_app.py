from __future__ import annotations

import importlib
from pathlib import Path

import pytest


@pytest.fixture
def hydrate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data_dir = tmp_path / "data"
    monkeypatch.setenv("DATA_DIR", str(data_dir))
    monkeypatch.setenv("NOTIFIER", "console")
    monkeypatch.setenv("DAILY_GOAL_IN_ML", "2000")
    monkeypatch.setenv("REMINDER_INTERVAL_MINUTES", "60")
    monkeypatch.setenv("ACTION_LOG_ENABLED", "true")
    return data_dir


@pytest.fixture
def app_module(hydrate_env: Path):
    return importlib.import_module("app")


def test_pages_share_the_single_state(app_module) -> None:
    hydrate = app_module.HydrateApp()
    first_view, _ = hydrate.bind_view()
    second_view, _ = hydrate.bind_view()

    hydrate.hydration.drink_water(250)

    assert first_view["consumed_display"] == "250 / 2000 ml consumed"
    assert second_view["consumed_display"] == "250 / 2000 ml consumed"
    assert first_view["remaining_display"] == "Remaining target: 1750 ml"


def test_disconnected_page_stops_updating(app_module) -> None:
    hydrate = app_module.HydrateApp()
    view, listener = hydrate.bind_view()

    hydrate.hydration.remove_listener(listener)
    hydrate.hydration.drink_water(500)

    assert view["consumed_display"] == "0 / 2000 ml consumed"


def test_new_app_reloads_the_same_stored_state(app_module) -> None:
    app_module.HydrateApp().hydration.drink_water(300)

    assert app_module.HydrateApp().hydration.remaining_target == 1700


def test_non_positive_config_falls_back_to_defaults(
    app_module, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("DAILY_GOAL_IN_ML", "0")
    monkeypatch.setenv("REMINDER_INTERVAL_MINUTES", "-5")

    hydrate = app_module.HydrateApp()

    assert hydrate.hydration.daily_goal == 2000
    assert hydrate.hydration.reminder_interval == 3600
    assert hydrate.hydration.progress_percentage == 0.0
    assert "⚠️ Configured daily goal" in capsys.readouterr().out


def test_recent_activity_lists_newest_first(app_module) -> None:
    hydrate = app_module.HydrateApp()
    hydrate.hydration.drink_water(100)
    hydrate.hydration.reset_target()

    lines = hydrate._format_event_log().splitlines()

    assert "reset" in lines[0]
    assert "drink" in lines[1]
