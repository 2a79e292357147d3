"""
Schema registry.

A :class:`SchemaRegistry` is an immutable snapshot mapping tool names to :class:`ToolSchema`.
Updates go through :class:`SchemaRegistryStore`, which builds a new snapshot and swaps it in, so a
validation run that grabbed a snapshot keeps seeing a consistent set of tools.
"""

import logging
import threading
from types import MappingProxyType
from typing import (
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
)

from toolplan.core.schema import ToolSchema

logger = logging.getLogger(__name__)


class SchemaRegistry(Mapping[str, ToolSchema]):
    """Read-only tool name -> schema mapping."""

    def __init__(self, schemas: Iterable[ToolSchema] = ()) -> None:
        self._schemas: Mapping[str, ToolSchema] = MappingProxyType({s.name: s for s in schemas})

    def __getitem__(self, name: str) -> ToolSchema:
        return self._schemas[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._schemas)

    def __len__(self) -> int:
        return len(self._schemas)

    def lookup(self, name: str) -> Optional[ToolSchema]:
        """Return the schema registered under *name*, if any."""
        return self._schemas.get(name)

    def names(self) -> List[str]:
        return sorted(self._schemas)

    def with_schema(self, schema: ToolSchema) -> "SchemaRegistry":
        """New snapshot with *schema* added or replaced."""
        merged = dict(self._schemas)
        merged[schema.name] = schema
        return SchemaRegistry(merged.values())

    def without(self, name: str) -> "SchemaRegistry":
        """New snapshot without *name*."""
        return SchemaRegistry(s for n, s in self._schemas.items() if n != name)


class SchemaRegistryStore:
    """Holds the current registry snapshot; writers serialise, readers never block."""

    def __init__(self, initial: Optional[SchemaRegistry] = None) -> None:
        self._current = initial or SchemaRegistry()
        self._write_lock = threading.Lock()

    def snapshot(self) -> SchemaRegistry:
        """The registry as of now.  Safe to hold for the duration of a request."""
        return self._current

    def register(self, schema: ToolSchema) -> SchemaRegistry:
        """Add or replace *schema*; returns the new snapshot."""
        with self._write_lock:
            if schema.name in self._current:
                logger.info("Replacing schema for tool '%s'", schema.name)
            else:
                logger.debug("Registering schema for tool '%s'", schema.name)
            self._current = self._current.with_schema(schema)
            return self._current

    def unregister(self, name: str) -> SchemaRegistry:
        with self._write_lock:
            self._current = self._current.without(name)
            return self._current

    def replace(self, registry: SchemaRegistry) -> None:
        """Swap in an entirely new snapshot."""
        with self._write_lock:
            self._current = registry
