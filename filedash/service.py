"""
Layout and widget mutations over a user's preferences document.

Every operation is one load -> mutate -> save cycle against the store. There
is no version check: two concurrent writers for the same user race and the
last save wins.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, List, Mapping, Optional

from filedash.db import PreferencesStore
from filedash.errors import ConflictError, NotFoundError, ValidationError
from filedash.preferences import (
    SETTINGS_FIELDS,
    Layout,
    Preferences,
    Widget,
    copy_layout,
    find_layout,
    find_widget,
)

logger = logging.getLogger(__name__)

# Layout fields update_layout may change.
LAYOUT_UPDATE_FIELDS = (
    "name",
    "is_default",
    "widgets",
    "grid_cols",
    "grid_row_height",
    "margin",
    "container_padding",
    "breakpoints",
    "cols",
)


class PreferenceService:
    """Stateless facade over a :class:`PreferencesStore`."""

    def __init__(self, store: PreferencesStore):
        self.store = store

    def _load(self, user_id: str) -> Preferences:
        preferences = self.store.load(user_id)
        if preferences is None:
            raise NotFoundError(f"Preferences for user {user_id} not found")
        return preferences

    def _layout(self, preferences: Preferences, layout_name: str) -> Layout:
        layout = find_layout(preferences, layout_name)
        if layout is None:
            raise NotFoundError(
                f"Layout {layout_name!r} not found for user {preferences.user_id}"
            )
        return layout

    def get_preferences(self, user_id: str) -> Preferences:
        preferences = self.store.load(user_id)
        if preferences:
            return preferences
        logger.info(f"Creating default preferences for user {user_id}")
        try:
            return self.store.create_default(user_id)
        except ConflictError:
            # Another request created it first.
            return self._load(user_id)

    def get_active_layout(self, user_id: str) -> Optional[Layout]:
        preferences = self.store.load(user_id)
        if preferences is None:
            return None
        return find_layout(preferences, preferences.active_layout_name)

    def switch_layout(self, user_id: str, layout_name: str) -> Preferences:
        preferences = self._load(user_id)
        self._layout(preferences, layout_name)
        preferences.active_layout_name = layout_name
        logger.info(f"User {user_id} switched to layout {layout_name!r}")
        return self.store.save(preferences)

    def create_layout(self, user_id: str, layout: Layout) -> Preferences:
        preferences = self._load(user_id)
        name = layout.name.strip() if isinstance(layout.name, str) else layout.name
        if find_layout(preferences, name) is not None:
            raise ConflictError(
                f"Layout with name {name!r} already exists for user {user_id}"
            )
        preferences.layouts.append(copy.deepcopy(layout))
        saved = self.store.save(preferences)
        logger.info(f"Created layout {name!r} for user {user_id}")
        return saved

    def duplicate_layout(
        self, user_id: str, source_layout_name: str, new_layout_name: str
    ) -> Preferences:
        preferences = self._load(user_id)
        source = find_layout(preferences, source_layout_name)
        if source is None:
            raise NotFoundError(
                f"Source layout {source_layout_name!r} not found for user {user_id}"
            )
        return self.create_layout(user_id, copy_layout(source, new_layout_name))

    def update_layout(
        self, user_id: str, layout_name: str, updates: Mapping[str, Any]
    ) -> Preferences:
        """
        Merge layout-level fields into the named layout.

        ``updates`` uses snake_case field names from :data:`LAYOUT_UPDATE_FIELDS`.
        Renaming the active layout keeps it active.
        """
        unknown = sorted(set(updates) - set(LAYOUT_UPDATE_FIELDS))
        if unknown:
            raise ValidationError(
                "unknown_field", f"Unknown layout fields: {', '.join(unknown)}"
            )
        preferences = self._load(user_id)
        layout = self._layout(preferences, layout_name)
        new_name = updates.get("name", layout_name)
        if isinstance(new_name, str):
            new_name = new_name.strip()
        if new_name != layout_name and find_layout(preferences, new_name) is not None:
            raise ConflictError(
                f"Layout with name {new_name!r} already exists for user {user_id}"
            )
        for key, value in updates.items():
            setattr(layout, key, copy.deepcopy(value))
        layout.name = new_name
        if preferences.active_layout_name == layout_name:
            preferences.active_layout_name = new_name
        if updates.get("is_default") is True:
            # The layout just flagged default wins over any earlier one.
            for other in preferences.layouts:
                if other is not layout:
                    other.is_default = False
        saved = self.store.save(preferences)
        logger.info(f"Updated layout {layout_name!r} for user {user_id}")
        return saved

    def delete_layout(self, user_id: str, layout_name: str) -> Preferences:
        preferences = self._load(user_id)
        layout = self._layout(preferences, layout_name)
        if len(preferences.layouts) <= 1:
            raise ValidationError(
                "last_layout",
                f"Cannot delete the last layout {layout_name!r} of user {user_id}",
            )
        preferences.layouts.remove(layout)
        if preferences.active_layout_name == layout_name:
            preferences.active_layout_name = preferences.layouts[0].name
        saved = self.store.save(preferences)
        logger.info(f"Deleted layout {layout_name!r} for user {user_id}")
        return saved

    def update_widget_layout(
        self, user_id: str, layout_name: str, widgets: List[Widget]
    ) -> Preferences:
        preferences = self._load(user_id)
        layout = self._layout(preferences, layout_name)
        layout.widgets = copy.deepcopy(list(widgets))
        return self.store.save(preferences)

    def add_widget(self, user_id: str, layout_name: str, widget: Widget) -> Preferences:
        preferences = self._load(user_id)
        layout = self._layout(preferences, layout_name)
        if find_widget(layout, widget.id) is not None:
            raise ConflictError(
                f"Widget with id {widget.id!r} already exists in layout "
                f"{layout_name!r} for user {user_id}"
            )
        layout.widgets.append(copy.deepcopy(widget))
        saved = self.store.save(preferences)
        logger.info(f"Added widget {widget.id!r} to layout {layout_name!r} for user {user_id}")
        return saved

    def remove_widget(
        self, user_id: str, layout_name: str, widget_id: str
    ) -> Preferences:
        preferences = self._load(user_id)
        layout = self._layout(preferences, layout_name)
        widget = find_widget(layout, widget_id)
        if widget is None:
            raise NotFoundError(
                f"Widget with id {widget_id!r} not found in layout "
                f"{layout_name!r} for user {user_id}"
            )
        layout.widgets.remove(widget)
        saved = self.store.save(preferences)
        logger.info(
            f"Removed widget {widget_id!r} from layout {layout_name!r} for user {user_id}"
        )
        return saved

    def update_global_settings(
        self, user_id: str, settings: Mapping[str, Any]
    ) -> Preferences:
        """Merge the given snake_case settings; other settings keep their values."""
        unknown = sorted(set(settings) - set(SETTINGS_FIELDS))
        if unknown:
            raise ValidationError(
                "unknown_field", f"Unknown global settings: {', '.join(unknown)}"
            )
        preferences = self._load(user_id)
        for key, value in settings.items():
            setattr(preferences.global_settings, key, value)
        return self.store.save(preferences)
