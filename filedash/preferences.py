"""
Dashboard preferences document: dataclasses, JSON conversion and validation.

A user owns exactly one :class:`Preferences` document. It holds an ordered list
of named :class:`Layout` objects (each a grid of :class:`Widget` cells), the
name of the layout currently on display and a handful of global display
settings.

The persisted/wire shape is camelCase JSON (``activeLayoutName``, ``gridCols``,
``minW`` ...). Keys inside ``config``, ``breakpoints`` and ``cols`` are user
data and are never renamed.

Nothing here touches storage. Stores call :func:`normalize_preferences` and
then :func:`validate_preferences` before every write.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Callable, Dict, List, Optional

from dacite import Config, from_dict
from dacite.exceptions import DaciteError
from pydantic.alias_generators import to_camel, to_snake

from filedash.errors import ValidationError

DEFAULT_LAYOUT_NAME = "Default"
MAX_LAYOUT_NAME_LENGTH = 50
MIN_GRID_COLS = 1
MAX_GRID_COLS = 24
MIN_GRID_ROW_HEIGHT = 50
MIN_REFRESH_INTERVAL = 30
MAX_REFRESH_INTERVAL = 3600


class WidgetType(StrEnum):
    CHART = "chart"
    TABLE = "table"
    CARD = "card"
    CALENDAR = "calendar"
    GRAPH = "graph"
    METRIC = "metric"
    TEXT = "text"
    IMAGE = "image"
    CUSTOM = "custom"


class Theme(StrEnum):
    LIGHT = "light"
    DARK = "dark"
    AUTO = "auto"


def _default_breakpoints() -> Dict[str, int]:
    return {"lg": 1200, "md": 996, "sm": 768, "xs": 480, "xxs": 0}


def _default_cols() -> Dict[str, int]:
    return {"lg": 12, "md": 10, "sm": 6, "xs": 4, "xxs": 2}


@dataclass
class Widget:
    """A positioned, sized cell on a layout grid."""

    id: str
    type: WidgetType
    x: int
    y: int
    w: int
    h: int
    min_w: int = 1
    min_h: int = 1
    max_w: int = 12
    max_h: int = 12
    is_resizable: bool = True
    is_draggable: bool = True
    title: Optional[str] = None
    # Widget-specific settings; any JSON value.
    config: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Layout:
    """A named arrangement of widgets plus its grid geometry."""

    name: str
    widgets: List[Widget] = field(default_factory=list)
    is_default: bool = False
    grid_cols: int = 12
    grid_row_height: int = 150
    # [horizontal, vertical]
    margin: List[float] = field(default_factory=lambda: [10, 10])
    container_padding: List[float] = field(default_factory=lambda: [10, 10])
    breakpoints: Dict[str, int] = field(default_factory=_default_breakpoints)
    cols: Dict[str, int] = field(default_factory=_default_cols)


@dataclass
class GlobalSettings:
    theme: Theme = Theme.LIGHT
    auto_save: bool = True
    refresh_interval: int = 300
    compact_mode: bool = False


@dataclass
class Preferences:
    """Per-user aggregate root."""

    user_id: str
    layouts: List[Layout]
    active_layout_name: str
    global_settings: GlobalSettings = field(default_factory=GlobalSettings)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


SETTINGS_FIELDS = ("theme", "auto_save", "refresh_interval", "compact_mode")


def create_default_preferences(user_id: str) -> Preferences:
    """Build (but do not persist) the document a new user starts with."""
    default_layout = Layout(
        name=DEFAULT_LAYOUT_NAME,
        is_default=True,
        widgets=[
            Widget(
                id="welcome-widget",
                type=WidgetType.CARD,
                x=0,
                y=0,
                w=6,
                h=2,
                title="Welcome",
                config={"message": "Welcome to your dashboard!"},
            ),
            Widget(
                id="stats-widget",
                type=WidgetType.METRIC,
                x=6,
                y=0,
                w=6,
                h=2,
                title="Quick Stats",
                config={},
            ),
        ],
    )
    return Preferences(
        user_id=user_id,
        layouts=[default_layout],
        active_layout_name=DEFAULT_LAYOUT_NAME,
        global_settings=GlobalSettings(),
    )


def find_layout(preferences: Preferences, name: str) -> Optional[Layout]:
    for layout in preferences.layouts:
        if layout.name == name:
            return layout
    return None


def find_widget(layout: Layout, widget_id: str) -> Optional[Widget]:
    for widget in layout.widgets:
        if widget.id == widget_id:
            return widget
    return None


def copy_layout(layout: Layout, new_name: str) -> Layout:
    """Deep copy of ``layout`` under ``new_name``, never flagged default."""
    duplicate = copy.deepcopy(layout)
    duplicate.name = new_name
    duplicate.is_default = False
    return duplicate


# ---------------------------------------------------------------------------
# JSON conversion
# ---------------------------------------------------------------------------

_OPAQUE_KEYS = frozenset({"config", "breakpoints", "cols"})


def _convert_keys(data: Any, convert: Callable[[str], str]) -> Any:
    if isinstance(data, Mapping):
        converted = {}
        for key, value in data.items():
            if not isinstance(key, str):
                converted[key] = value
                continue
            if key in _OPAQUE_KEYS:
                converted[key] = copy.deepcopy(value)
            else:
                converted[convert(key)] = _convert_keys(value, convert)
        return converted
    if isinstance(data, (list, tuple)):
        return [_convert_keys(item, convert) for item in data]
    return data


def _jsonable(value: Any) -> Any:
    if isinstance(value, StrEnum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def _parse_datetime(value: Any) -> Any:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


# Types are checked by the validate_* functions, which report the broken rule.
_DACITE_CONFIG = Config(check_types=False, type_hooks={datetime: _parse_datetime})


def _build(data_class: type, data: Any, what: str):
    if not isinstance(data, Mapping):
        raise ValidationError("malformed_document", f"{what} must be a JSON object")
    try:
        return from_dict(
            data_class=data_class,
            data=_convert_keys(data, to_snake),
            config=_DACITE_CONFIG,
        )
    except (DaciteError, ValueError) as exc:
        raise ValidationError("malformed_document", f"Invalid {what}: {exc}") from exc


def widget_from_dict(data: Mapping[str, Any]) -> Widget:
    return _build(Widget, data, "widget")


def layout_from_dict(data: Mapping[str, Any]) -> Layout:
    return _build(Layout, data, "layout")


def preferences_from_dict(data: Mapping[str, Any]) -> Preferences:
    return _build(Preferences, data, "preferences document")


def widget_to_dict(widget: Widget) -> dict:
    return _convert_keys(_jsonable(asdict(widget)), to_camel)


def layout_to_dict(layout: Layout) -> dict:
    return _convert_keys(_jsonable(asdict(layout)), to_camel)


def preferences_to_dict(preferences: Preferences) -> dict:
    return _convert_keys(_jsonable(asdict(preferences)), to_camel)


# ---------------------------------------------------------------------------
# Normalization and validation
# ---------------------------------------------------------------------------


def demote_extra_defaults(layouts: List[Layout]) -> None:
    """Keep ``is_default`` only on the first layout flagged default."""
    seen_default = False
    for layout in layouts:
        if not isinstance(layout, Layout) or not layout.is_default:
            continue
        if seen_default:
            layout.is_default = False
        seen_default = True


def _coerce_enum(enum_cls: type, value: Any) -> Any:
    if isinstance(value, str) and not isinstance(value, enum_cls):
        try:
            return enum_cls(value)
        except ValueError:
            return value
    return value


def normalize_preferences(preferences: Preferences) -> Preferences:
    """Trim names and titles, coerce enum strings and demote extra defaults.

    Mutates ``preferences`` in place and returns it. Values that cannot be
    normalized are left alone for :func:`validate_preferences` to reject.
    """
    if isinstance(preferences.active_layout_name, str):
        preferences.active_layout_name = preferences.active_layout_name.strip()
    if isinstance(preferences.global_settings, GlobalSettings):
        preferences.global_settings.theme = _coerce_enum(
            Theme, preferences.global_settings.theme
        )
    if not isinstance(preferences.layouts, list):
        return preferences
    for layout in preferences.layouts:
        if not isinstance(layout, Layout):
            continue
        if isinstance(layout.name, str):
            layout.name = layout.name.strip()
        if not isinstance(layout.widgets, list):
            continue
        for widget in layout.widgets:
            if not isinstance(widget, Widget):
                continue
            widget.type = _coerce_enum(WidgetType, widget.type)
            if isinstance(widget.title, str):
                widget.title = widget.title.strip()
    demote_extra_defaults(preferences.layouts)
    return preferences


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _check_json_value(value: Any, path: str) -> None:
    if value is None or isinstance(value, (str, bool, int)):
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError("widget_config", f"{path} must be a finite number")
        return
    if isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            _check_json_value(item, f"{path}[{index}]")
        return
    if isinstance(value, Mapping):
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValidationError(
                    "widget_config", f"{path} has a non-string key {key!r}"
                )
            _check_json_value(item, f"{path}.{key}")
        return
    raise ValidationError(
        "widget_config",
        f"{path} holds a value of type {type(value).__name__}, which is not JSON",
    )


def validate_widget(widget: Widget, layout_name: Optional[str] = None) -> None:
    if not isinstance(widget, Widget):
        raise ValidationError(
            "malformed_widget", f"Layout {layout_name!r} holds a non-widget entry"
        )
    if not isinstance(widget.id, str) or not widget.id.strip():
        raise ValidationError(
            "widget_id", f"Widget id is required (layout {layout_name!r})"
        )
    if "/" in widget.id:
        raise ValidationError(
            "widget_id", f"Widget id {widget.id!r} may not contain '/'"
        )
    where = f"Widget {widget.id!r} in layout {layout_name!r}"
    try:
        WidgetType(widget.type)
    except ValueError:
        allowed = ", ".join(member.value for member in WidgetType)
        raise ValidationError(
            "widget_type", f"{where}: type {widget.type!r} is not one of {allowed}"
        ) from None
    for attr in ("x", "y"):
        value = getattr(widget, attr)
        if not _is_int(value) or value < 0:
            raise ValidationError(
                "widget_position",
                f"{where}: {attr} must be a non-negative integer, got {value!r}",
            )
    for attr in ("w", "h", "min_w", "min_h", "max_w", "max_h"):
        value = getattr(widget, attr)
        if not _is_int(value) or value < 1:
            raise ValidationError(
                "widget_size", f"{where}: {attr} must be an integer >= 1, got {value!r}"
            )
    for attr in ("is_resizable", "is_draggable"):
        if not isinstance(getattr(widget, attr), bool):
            raise ValidationError("widget_flags", f"{where}: {attr} must be a boolean")
    if widget.title is not None and not isinstance(widget.title, str):
        raise ValidationError("widget_title", f"{where}: title must be a string")
    if not isinstance(widget.config, Mapping):
        raise ValidationError("widget_config", f"{where}: config must be an object")
    _check_json_value(widget.config, f"{where}: config")


def _check_pair(value: Any, rule: str, where: str) -> None:
    if (
        not isinstance(value, (list, tuple))
        or len(value) != 2
        or not all(_is_number(item) and item >= 0 for item in value)
    ):
        raise ValidationError(
            rule, f"{where}: {rule} must be two non-negative numbers, got {value!r}"
        )


def _check_breakpoint_map(value: Any, rule: str, where: str) -> None:
    if not isinstance(value, Mapping):
        raise ValidationError(rule, f"{where}: {rule} must be an object")
    for key, item in value.items():
        if not isinstance(key, str) or not _is_number(item) or item < 0:
            raise ValidationError(
                rule,
                f"{where}: {rule} entry {key!r} must map to a non-negative number",
            )


def validate_layout(layout: Layout) -> None:
    if not isinstance(layout, Layout):
        raise ValidationError("malformed_layout", "Layouts must be layout objects")
    if not isinstance(layout.name, str) or not layout.name.strip():
        raise ValidationError("layout_name_required", "Layout name is required")
    if len(layout.name) > MAX_LAYOUT_NAME_LENGTH:
        raise ValidationError(
            "layout_name_length",
            f"Layout name {layout.name!r} is longer than "
            f"{MAX_LAYOUT_NAME_LENGTH} characters",
        )
    # Layout names are used as URL path segments.
    if "/" in layout.name:
        raise ValidationError(
            "layout_name_chars", f"Layout name {layout.name!r} may not contain '/'"
        )
    where = f"Layout {layout.name!r}"
    if not isinstance(layout.is_default, bool):
        raise ValidationError("layout_flags", f"{where}: isDefault must be a boolean")
    if not isinstance(layout.widgets, list):
        raise ValidationError("malformed_layout", f"{where}: widgets must be a list")
    seen_ids = set()
    for widget in layout.widgets:
        validate_widget(widget, layout.name)
        if widget.id in seen_ids:
            raise ValidationError(
                "duplicate_widget_id", f"{where}: widget id {widget.id!r} is repeated"
            )
        seen_ids.add(widget.id)
    if not _is_int(layout.grid_cols) or not (
        MIN_GRID_COLS <= layout.grid_cols <= MAX_GRID_COLS
    ):
        raise ValidationError(
            "grid_cols",
            f"{where}: gridCols must be an integer between {MIN_GRID_COLS} "
            f"and {MAX_GRID_COLS}, got {layout.grid_cols!r}",
        )
    if not _is_int(layout.grid_row_height) or layout.grid_row_height < MIN_GRID_ROW_HEIGHT:
        raise ValidationError(
            "grid_row_height",
            f"{where}: gridRowHeight must be an integer >= {MIN_GRID_ROW_HEIGHT}, "
            f"got {layout.grid_row_height!r}",
        )
    _check_pair(layout.margin, "margin", where)
    _check_pair(layout.container_padding, "container_padding", where)
    _check_breakpoint_map(layout.breakpoints, "breakpoints", where)
    _check_breakpoint_map(layout.cols, "cols", where)


def validate_global_settings(settings: GlobalSettings) -> None:
    if not isinstance(settings, GlobalSettings):
        raise ValidationError("malformed_document", "globalSettings must be an object")
    try:
        Theme(settings.theme)
    except ValueError:
        raise ValidationError(
            "theme", f"Theme {settings.theme!r} is not one of light, dark, auto"
        ) from None
    if not isinstance(settings.auto_save, bool):
        raise ValidationError("auto_save", "autoSave must be a boolean")
    if not _is_int(settings.refresh_interval) or not (
        MIN_REFRESH_INTERVAL <= settings.refresh_interval <= MAX_REFRESH_INTERVAL
    ):
        raise ValidationError(
            "refresh_interval",
            f"refreshInterval must be between {MIN_REFRESH_INTERVAL} and "
            f"{MAX_REFRESH_INTERVAL} seconds, got {settings.refresh_interval!r}",
        )
    if not isinstance(settings.compact_mode, bool):
        raise ValidationError("compact_mode", "compactMode must be a boolean")


def validate_preferences(preferences: Preferences) -> None:
    """Raise :class:`ValidationError` for the first broken rule, if any."""
    if not isinstance(preferences.user_id, str) or not preferences.user_id:
        raise ValidationError("user_id", "Preferences must reference a user id")
    if not isinstance(preferences.layouts, list) or not preferences.layouts:
        raise ValidationError(
            "layouts_empty",
            f"At least one layout is required (user {preferences.user_id})",
        )
    names = set()
    default_count = 0
    for layout in preferences.layouts:
        validate_layout(layout)
        if layout.name in names:
            raise ValidationError(
                "duplicate_layout_name",
                f"Layout name {layout.name!r} is used more than once "
                f"(user {preferences.user_id})",
            )
        names.add(layout.name)
        default_count += int(layout.is_default)
    if default_count > 1:
        raise ValidationError(
            "multiple_default_layouts", "Only one layout may be the default"
        )
    active = preferences.active_layout_name
    if not isinstance(active, str) or active not in names:
        raise ValidationError(
            "active_layout_missing",
            f"Active layout {active!r} does not match "
            f"any layout (user {preferences.user_id})",
        )
    validate_global_settings(preferences.global_settings)
