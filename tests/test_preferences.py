import asyncio
import json

from preferences import (
    DEFAULT_PREFERENCES,
    PreferenceStore,
    layout_options_from_preferences,
    load_preferences,
    normalize_preferences,
    resolve_calendar_selection,
    save_preferences,
)


def test_normalize_keeps_valid_values_only() -> None:
    prefs = normalize_preferences(
        {
            "selected_calendar_ids": ["work", "", None, 7],
            "show_week_numbers": "no",
            "gray_past_days": True,
            "ui_theme_override": "neon",
            "view_mode": "week-rows",
            "min_duration_hours": "2.5",
            "refresh_settings": {"auto_refresh_enabled": False, "auto_refresh_interval": -5},
        }
    )
    assert prefs["selected_calendar_ids"] == ["work", "7"]
    assert prefs["show_week_numbers"] is True
    assert prefs["gray_past_days"] is True
    assert prefs["ui_theme_override"] == "auto"
    assert prefs["view_mode"] == "week-rows"
    assert prefs["min_duration_hours"] == 2.5
    assert prefs["refresh_settings"] == {"auto_refresh_enabled": False, "auto_refresh_interval": 300000}


def test_normalize_rejects_unknown_mode_and_bad_threshold() -> None:
    prefs = normalize_preferences({"view_mode": "spiral", "min_duration_hours": -3})
    assert prefs["view_mode"] == "linear"
    assert prefs["min_duration_hours"] == 0.0
    assert normalize_preferences({"min_duration_hours": True})["min_duration_hours"] == 0
    assert normalize_preferences(None) == DEFAULT_PREFERENCES


def test_normalize_rejects_infinite_threshold() -> None:
    prefs = normalize_preferences(json.loads('{"min_duration_hours": Infinity}'))
    assert prefs["min_duration_hours"] == 0
    assert normalize_preferences({"min_duration_hours": "-inf"})["min_duration_hours"] == 0


def test_defaults_are_not_shared() -> None:
    prefs = normalize_preferences({})
    prefs["refresh_settings"]["auto_refresh_enabled"] = False
    assert DEFAULT_PREFERENCES["refresh_settings"]["auto_refresh_enabled"] is True


def test_load_falls_back_to_defaults(tmp_path) -> None:
    path = tmp_path / "preferences.json"
    assert load_preferences(path) == DEFAULT_PREFERENCES
    path.write_text("{broken", encoding="utf-8")
    assert load_preferences(path) == DEFAULT_PREFERENCES


def test_undecodable_file_falls_back_to_defaults(tmp_path, caplog) -> None:
    path = tmp_path / "preferences.json"
    path.write_bytes(b"\xff\xfe{}")
    assert load_preferences(path) == DEFAULT_PREFERENCES
    assert asyncio.run(PreferenceStore(path).load("view_mode", "linear")) == "linear"
    assert "Ignoring unreadable preferences file" in caplog.text


def test_save_writes_normalized_json(tmp_path) -> None:
    path = tmp_path / "preferences.json"
    save_preferences(path, {"view_mode": "day-aligned", "extra": 1})
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["view_mode"] == "day-aligned"
    assert "extra" not in data


def test_store_load_and_save(tmp_path) -> None:
    store = PreferenceStore(tmp_path / "preferences.json")
    assert asyncio.run(store.load("selected_calendar_ids", ["fallback"])) == ["fallback"]
    asyncio.run(store.save("all_day_only", True))
    assert asyncio.run(store.load("all_day_only")) is True
    assert asyncio.run(store.load_all())["all_day_only"] is True


def test_store_save_failure_is_logged(tmp_path, caplog) -> None:
    store = PreferenceStore(tmp_path / "missing" / "preferences.json")
    asyncio.run(store.save("view_mode", "week-rows"))
    assert "Could not save preference" in caplog.text
    assert asyncio.run(store.load("view_mode", "linear")) == "linear"


def test_resolve_calendar_selection() -> None:
    assert resolve_calendar_selection(None, ["a", "b"]) == ["a", "b"]
    assert resolve_calendar_selection(["b", "gone"], ["a", "b"]) == ["b"]
    assert resolve_calendar_selection([], ["a", "b"]) == []


def test_layout_options_from_preferences() -> None:
    prefs = {"selected_calendar_ids": ["b"], "show_week_numbers": False, "min_duration_hours": 1}
    options = layout_options_from_preferences(prefs, ["a", "b"])
    assert options.calendar_ids == frozenset({"b"})
    assert options.show_week_numbers is False
    assert options.min_duration_hours == 1.0

    assert layout_options_from_preferences({}, ["a", "b"]).calendar_ids == frozenset({"a", "b"})
    assert layout_options_from_preferences({}).calendar_ids is None
    assert layout_options_from_preferences(prefs).calendar_ids == frozenset({"b"})


def test_store_update_merges_and_normalizes(tmp_path) -> None:
    store = PreferenceStore(tmp_path / "preferences.json")
    asyncio.run(store.save("gray_past_days", True))
    prefs = asyncio.run(store.update({"view_mode": "week-rows", "extra": 1}))
    assert prefs["view_mode"] == "week-rows"
    assert prefs["gray_past_days"] is True
    assert "extra" not in prefs
    assert load_preferences(tmp_path / "preferences.json")["view_mode"] == "week-rows"


def test_store_update_failure_returns_none(tmp_path, caplog) -> None:
    store = PreferenceStore(tmp_path / "missing" / "preferences.json")
    assert asyncio.run(store.update({"view_mode": "week-rows"})) is None
    assert "Could not save preferences" in caplog.text
