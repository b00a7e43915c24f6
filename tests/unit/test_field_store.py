"""Tests for the per-item parameter store."""

from quote_sync.core.field_store import FieldStore
from quote_sync.core.models import SENTINEL_ORDER, Parameter, PromptDefinition


def definitions():
    return [
        PromptDefinition(id="b", label="Width", current_value=100, sequence=2),
        PromptDefinition(id="a", label="Height", current_value=50, sequence=1),
        PromptDefinition(id="c", label="Colour", current_value="", sequence=3),
    ]


class TestFieldStore:
    def test_set_uses_definition_label_and_order(self):
        store = FieldStore()
        store.update_definitions(definitions())

        parameter = store.set("b", 10)

        assert parameter.label == "Width"
        assert parameter.order == 2

    def test_set_unknown_id_gets_sentinel_order(self):
        store = FieldStore()
        parameter = store.set("x", 1)
        assert parameter.label == "x"
        assert parameter.order == SENTINEL_ORDER

    def test_apply_defaults_skips_empty_and_existing(self):
        store = FieldStore()
        store.set("a", 7)

        written = store.apply_defaults(definitions())

        assert written == 1
        assert store.values() == {"a": 7, "b": 100}
        assert store.get("a").label == "Height"
        assert "c" not in store

    def test_snapshot_is_sorted_copy(self):
        store = FieldStore()
        store.replace([Parameter("z", "Z", 1, order=5), Parameter("y", "Y", 2, order=1)])

        snapshot = store.snapshot()
        snapshot[0].value = 99

        assert [p.id for p in snapshot] == ["y", "z"]
        assert store.get("y").value == 2

    def test_clear_forgets_definitions(self):
        store = FieldStore()
        store.update_definitions(definitions())
        store.set("a", 1)
        store.clear()

        assert len(store) == 0
        assert store.definitions == []
