"""Helpers for reading and saving year-view preferences."""

from __future__ import annotations

import copy
import json
import math
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from row_topology import TOPOLOGIES
from year_layout import LayoutOptions

logger = logging.getLogger(__name__)

THEME_MODES = ("auto", "light", "dark")
DEFAULT_REFRESH_INTERVAL_MS = 300000

DEFAULT_REFRESH_SETTINGS = {
    "auto_refresh_enabled": True,
    "auto_refresh_interval": DEFAULT_REFRESH_INTERVAL_MS,
}

DEFAULT_PREFERENCES = {
    "selected_calendar_ids": None,
    "calendar_panel_expanded": False,
    "ui_theme_override": "auto",
    "show_week_numbers": True,
    "gray_past_days": False,
    "highlight_current_day": False,
    "refresh_settings": DEFAULT_REFRESH_SETTINGS,
    "view_mode": "linear",
    "all_day_only": False,
    "min_duration_hours": 0,
}

BOOLEAN_KEYS = (
    "calendar_panel_expanded",
    "show_week_numbers",
    "gray_past_days",
    "highlight_current_day",
    "all_day_only",
)


def normalize_preferences(data: dict | None) -> dict:
    prefs = copy.deepcopy(DEFAULT_PREFERENCES)
    if not isinstance(data, dict):
        return prefs

    selected = data.get("selected_calendar_ids")
    if isinstance(selected, list):
        prefs["selected_calendar_ids"] = [str(item) for item in selected if item]

    for key in BOOLEAN_KEYS:
        value = data.get(key)
        if isinstance(value, bool):
            prefs[key] = value

    theme = data.get("ui_theme_override")
    if theme in THEME_MODES:
        prefs["ui_theme_override"] = theme

    view_mode = data.get("view_mode")
    if view_mode in TOPOLOGIES:
        prefs["view_mode"] = view_mode

    hours = data.get("min_duration_hours")
    if hours is not None and not isinstance(hours, bool):
        try:
            value = float(hours)
        except (TypeError, ValueError):
            value = None
        if value is not None and math.isfinite(value):
            prefs["min_duration_hours"] = max(0.0, value)

    refresh = data.get("refresh_settings")
    if isinstance(refresh, dict):
        prefs["refresh_settings"]["auto_refresh_enabled"] = (
            refresh.get("auto_refresh_enabled") is not False
        )
        interval = refresh.get("auto_refresh_interval")
        if isinstance(interval, int) and not isinstance(interval, bool) and interval > 0:
            prefs["refresh_settings"]["auto_refresh_interval"] = interval

    return prefs


def load_preferences(path: Path) -> dict:
    if not path.exists():
        return copy.deepcopy(DEFAULT_PREFERENCES)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as e:
        logger.warning(f"Ignoring unreadable preferences file {path}: {e}")
        return copy.deepcopy(DEFAULT_PREFERENCES)
    return normalize_preferences(data)


def save_preferences(path: Path, prefs: dict) -> None:
    normalized = normalize_preferences(prefs)
    path.write_text(json.dumps(normalized, indent=2), encoding="utf-8")


class PreferenceStore:
    """Key-value access to the preferences file.

    Failures never propagate: a failed load yields the default, a failed
    save is logged and skipped.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    async def load(self, key: str, default: Any = None) -> Any:
        try:
            prefs = load_preferences(self.path)
        except OSError as e:
            logger.warning(f"Could not load preference {key!r}: {e}")
            return default
        value = prefs.get(key)
        if value is None:
            return default
        return value

    async def load_all(self) -> dict:
        try:
            return load_preferences(self.path)
        except OSError as e:
            logger.warning(f"Could not load preferences: {e}")
            return copy.deepcopy(DEFAULT_PREFERENCES)

    async def save(self, key: str, value: Any) -> None:
        try:
            prefs = load_preferences(self.path)
            prefs[key] = value
            save_preferences(self.path, prefs)
        except OSError as e:
            logger.warning(f"Could not save preference {key!r}: {e}")

    async def update(self, changes: dict) -> dict | None:
        """Merge changes into the stored preferences; None when the write fails."""
        prefs = await self.load_all()
        prefs.update(changes)
        try:
            save_preferences(self.path, prefs)
        except OSError as e:
            logger.warning(f"Could not save preferences: {e}")
            return None
        return normalize_preferences(prefs)


def resolve_calendar_selection(
    persisted: Iterable[str] | None, available_ids: Iterable[str]
) -> list[str]:
    """Keep persisted ids that still exist; select everything if nothing was saved."""
    available = list(available_ids)
    if persisted is None:
        return available
    wanted = set(persisted)
    return [calendar_id for calendar_id in available if calendar_id in wanted]


def layout_options_from_preferences(
    prefs: dict, available_ids: Iterable[str] | None = None
) -> LayoutOptions:
    prefs = normalize_preferences(prefs)
    calendar_ids = None
    if available_ids is not None:
        calendar_ids = frozenset(
            resolve_calendar_selection(prefs["selected_calendar_ids"], available_ids)
        )
    elif prefs["selected_calendar_ids"] is not None:
        calendar_ids = frozenset(prefs["selected_calendar_ids"])
    return LayoutOptions(
        show_week_numbers=prefs["show_week_numbers"],
        calendar_ids=calendar_ids,
        all_day_only=prefs["all_day_only"],
        min_duration_hours=prefs["min_duration_hours"],
    )
