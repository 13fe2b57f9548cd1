import unittest
from unittest.mock import MagicMock

from filedash.db import InMemoryPreferencesStore
from filedash.errors import ConflictError, NotFoundError, ValidationError
from filedash.preferences import (
    Layout,
    Theme,
    Widget,
    WidgetType,
    create_default_preferences,
    find_layout,
)
from filedash.service import PreferenceService

USER = "user-1"


def _widget(widget_id: str, **overrides) -> Widget:
    fields = dict(id=widget_id, type=WidgetType.TABLE, x=0, y=2, w=4, h=3)
    fields.update(overrides)
    return Widget(**fields)


class PreferenceServiceTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryPreferencesStore()
        self.service = PreferenceService(self.store)

    def _seed(self):
        return self.service.get_preferences(USER)

    def test_get_preferences_creates_single_default_document(self):
        prefs = self.service.get_preferences(USER)
        self.assertEqual(list(self.store.documents), [USER])
        self.assertEqual(prefs.active_layout_name, "Default")
        self.assertEqual([l.name for l in prefs.layouts], ["Default"])
        self.assertEqual(
            [w.id for w in prefs.layouts[0].widgets], ["welcome-widget", "stats-widget"]
        )
        self.assertIsNotNone(prefs.created_at)

        again = self.service.get_preferences(USER)
        self.assertEqual(again, prefs)
        self.assertEqual(len(self.store.documents), 1)

    def test_get_preferences_writes_once(self):
        store = MagicMock()
        store.load.return_value = None
        store.create_default.return_value = create_default_preferences(USER)
        PreferenceService(store).get_preferences(USER)
        store.create_default.assert_called_once_with(USER)
        store.save.assert_not_called()

    def test_get_active_layout_without_document(self):
        self.assertIsNone(self.service.get_active_layout(USER))

    def test_switch_layout_then_get_active_layout(self):
        self._seed()
        self.service.create_layout(USER, Layout(name="Ops"))
        self.service.switch_layout(USER, "Ops")
        self.assertEqual(self.service.get_active_layout(USER).name, "Ops")
        self.service.switch_layout(USER, "Default")
        self.assertEqual(self.service.get_active_layout(USER).name, "Default")

    def test_switch_layout_not_found(self):
        with self.assertRaises(NotFoundError):
            self.service.switch_layout(USER, "Default")
        self._seed()
        with self.assertRaises(NotFoundError):
            self.service.switch_layout(USER, "Missing")

    def test_create_layout_conflict_leaves_document_unchanged(self):
        self._seed()
        before = dict(self.store.documents[USER])
        with self.assertRaises(ConflictError):
            self.service.create_layout(USER, Layout(name="Default"))
        self.assertEqual(self.store.documents[USER], before)

    def test_create_layout_without_document(self):
        with self.assertRaises(NotFoundError):
            self.service.create_layout(USER, Layout(name="New"))

    def test_create_layout_demotes_second_default(self):
        self._seed()
        prefs = self.service.create_layout(USER, Layout(name="Also", is_default=True))
        self.assertEqual([l.is_default for l in prefs.layouts], [True, False])

    def test_create_layout_rejects_invalid_layout(self):
        self._seed()
        with self.assertRaises(ValidationError) as ctx:
            self.service.create_layout(USER, Layout(name="Wide", grid_cols=30))
        self.assertEqual(ctx.exception.rule, "grid_cols")
        self.assertEqual(len(self.store.load(USER).layouts), 1)

    def test_duplicate_layout(self):
        seeded = self._seed()
        prefs = self.service.duplicate_layout(USER, "Default", "Default Copy")
        copy = find_layout(prefs, "Default Copy")
        default = find_layout(prefs, "Default")
        self.assertIsNotNone(copy)
        self.assertFalse(copy.is_default)
        self.assertEqual(copy.widgets, default.widgets)
        self.assertEqual(copy.grid_cols, default.grid_cols)
        self.assertEqual(default, seeded.layouts[0])

    def test_duplicate_layout_missing_source_and_conflict(self):
        self._seed()
        with self.assertRaises(NotFoundError):
            self.service.duplicate_layout(USER, "Nope", "Copy")
        with self.assertRaises(ConflictError):
            self.service.duplicate_layout(USER, "Default", "Default")

    def test_add_then_remove_widget_round_trip(self):
        prefs = self._seed()
        before = prefs.layouts[0].widgets
        self.service.add_widget(USER, "Default", _widget("extra"))
        after = self.service.remove_widget(USER, "Default", "extra")
        self.assertEqual(after.layouts[0].widgets, before)

    def test_add_widget_conflict(self):
        self._seed()
        with self.assertRaises(ConflictError):
            self.service.add_widget(USER, "Default", _widget("welcome-widget"))

    def test_add_widget_missing_layout_or_document(self):
        with self.assertRaises(NotFoundError):
            self.service.add_widget(USER, "Default", _widget("x"))
        self._seed()
        with self.assertRaises(NotFoundError):
            self.service.add_widget(USER, "Missing", _widget("x"))

    def test_add_widget_nested_config_round_trips(self):
        self._seed()
        config = {
            "series": [{"label": "a", "points": [1, 2.5, None]}, {"label": "b"}],
            "options": {"legend": {"show": True, "position": "top"}},
            "empty": {},
        }
        self.service.add_widget(USER, "Default", _widget("chart", config=config))
        loaded = self.store.load(USER)
        widget = next(w for w in loaded.layouts[0].widgets if w.id == "chart")
        self.assertEqual(widget.config, config)

    def test_remove_widget_not_found(self):
        self._seed()
        with self.assertRaises(NotFoundError):
            self.service.remove_widget(USER, "Default", "ghost")

    def test_update_widget_layout_replaces_widgets(self):
        self._seed()
        widgets = [_widget("a"), _widget("b", x=4)]
        prefs = self.service.update_widget_layout(USER, "Default", widgets)
        self.assertEqual([w.id for w in prefs.layouts[0].widgets], ["a", "b"])
        with self.assertRaises(NotFoundError):
            self.service.update_widget_layout(USER, "Missing", widgets)

    def test_update_widget_layout_rejects_undersized_widget(self):
        self._seed()
        with self.assertRaises(ValidationError) as ctx:
            self.service.update_widget_layout(USER, "Default", [_widget("a", h=0)])
        self.assertEqual(ctx.exception.rule, "widget_size")

    def test_delete_last_layout_rejected(self):
        self._seed()
        with self.assertRaises(ValidationError) as ctx:
            self.service.delete_layout(USER, "Default")
        self.assertEqual(ctx.exception.rule, "last_layout")
        self.assertEqual(len(self.store.load(USER).layouts), 1)

    def test_delete_active_layout_reassigns_active(self):
        self._seed()
        self.service.create_layout(USER, Layout(name="Second"))
        self.service.switch_layout(USER, "Second")
        self.service.create_layout(USER, Layout(name="Third"))
        prefs = self.service.delete_layout(USER, "Second")
        self.assertEqual([l.name for l in prefs.layouts], ["Default", "Third"])
        self.assertEqual(prefs.active_layout_name, "Default")

    def test_delete_missing_layout(self):
        self._seed()
        with self.assertRaises(NotFoundError):
            self.service.delete_layout(USER, "Missing")

    def test_update_layout_rename_keeps_active(self):
        self._seed()
        prefs = self.service.update_layout(
            USER, "Default", {"name": "Home", "grid_cols": 24}
        )
        self.assertEqual(prefs.active_layout_name, "Home")
        self.assertEqual(prefs.layouts[0].grid_cols, 24)

    def test_update_layout_rename_conflict(self):
        self._seed()
        self.service.create_layout(USER, Layout(name="Other"))
        with self.assertRaises(ConflictError):
            self.service.update_layout(USER, "Other", {"name": "Default"})

    def test_update_layout_default_flag_moves(self):
        self._seed()
        self.service.create_layout(USER, Layout(name="Other"))
        prefs = self.service.update_layout(USER, "Other", {"is_default": True})
        self.assertFalse(find_layout(prefs, "Default").is_default)
        self.assertTrue(find_layout(prefs, "Other").is_default)

    def test_update_layout_unknown_field(self):
        self._seed()
        with self.assertRaises(ValidationError):
            self.service.update_layout(USER, "Default", {"colour": "red"})

    def test_update_global_settings_merges(self):
        self._seed()
        prefs = self.service.update_global_settings(
            USER, {"theme": "dark", "refresh_interval": 60}
        )
        self.assertEqual(prefs.global_settings.theme, Theme.DARK)
        self.assertEqual(prefs.global_settings.refresh_interval, 60)
        self.assertTrue(prefs.global_settings.auto_save)
        self.assertFalse(prefs.global_settings.compact_mode)

    def test_update_global_settings_errors(self):
        with self.assertRaises(NotFoundError):
            self.service.update_global_settings(USER, {"theme": "dark"})
        self._seed()
        with self.assertRaises(ValidationError) as ctx:
            self.service.update_global_settings(USER, {"refresh_interval": 5000})
        self.assertEqual(ctx.exception.rule, "refresh_interval")
        with self.assertRaises(ValidationError) as ctx:
            self.service.update_global_settings(USER, {"volume": 3})
        self.assertEqual(ctx.exception.rule, "unknown_field")


class DefaultLayoutInvariantTests(unittest.TestCase):
    def test_at_most_one_default_after_save(self):
        store = InMemoryPreferencesStore()
        prefs = create_default_preferences(USER)
        prefs.layouts += [
            Layout(name=f"L{i}", is_default=True) for i in range(3)
        ]
        saved = store.save(prefs)
        self.assertEqual(sum(l.is_default for l in saved.layouts), 1)
        self.assertTrue(saved.layouts[0].is_default)
        reloaded = store.load(USER)
        self.assertEqual(sum(l.is_default for l in reloaded.layouts), 1)

    def test_save_does_not_mutate_input(self):
        store = InMemoryPreferencesStore()
        prefs = create_default_preferences(USER)
        store.save(prefs)
        self.assertIsNone(prefs.created_at)

    def test_create_default_twice_conflicts(self):
        store = InMemoryPreferencesStore()
        store.create_default(USER)
        with self.assertRaises(ConflictError):
            store.create_default(USER)


if __name__ == "__main__":
    unittest.main()
