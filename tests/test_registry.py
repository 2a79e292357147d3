"""Tests for the schema registry snapshots."""

from toolplan.core.registry import (
    SchemaRegistry,
    SchemaRegistryStore,
)
from toolplan.core.schema import ToolSchema


def test_lookup() -> None:
    """Registered tools are found by name; unknown names return None."""
    registry = SchemaRegistry([ToolSchema(name="echo")])
    assert registry.lookup("echo") is not None
    assert registry.lookup("nope") is None
    assert registry.names() == ["echo"]


def test_snapshot_is_not_affected_by_later_registration() -> None:
    """A snapshot taken before an update keeps its original contents."""
    store = SchemaRegistryStore()
    store.register(ToolSchema(name="first"))
    before = store.snapshot()

    after = store.register(ToolSchema(name="second"))

    assert "second" not in before
    assert set(after) == {"first", "second"}
    assert store.snapshot() is after


def test_register_replaces_and_unregister_removes() -> None:
    """Re-registering a name swaps the schema; unregistering drops it."""
    store = SchemaRegistryStore()
    store.register(ToolSchema(name="tool", description="v1"))
    store.register(ToolSchema(name="tool", description="v2"))
    assert store.snapshot()["tool"].description == "v2"

    store.unregister("tool")
    assert len(store.snapshot()) == 0
