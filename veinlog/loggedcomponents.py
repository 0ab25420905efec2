"""Bookkeeping of which entity components are logged."""

from __future__ import annotations

from collections.abc import Iterable

COMPONENTS_NOT_STORED_ON_ALL = ("EntityName", "INF_ModuleInterface")


def remove_not_stored_on_entities_storing_all_components(all_components: Iterable[str]) -> list[str]:
    """Drop the components that are never logged when an entity logs all components."""
    return [name for name in all_components if name not in COMPONENTS_NOT_STORED_ON_ALL]


class LoggedComponents:
    """Entities whose components are logged, either all of them or a chosen few."""

    def __init__(self, entities_with_all_components_stored_always: Iterable[int] = ()) -> None:
        self._always_all = tuple(entities_with_all_components_stored_always)
        self._specific: dict[int, dict[str, None]] = {}
        self._all: dict[int, None] = {}
        self._init_stored_always()

    def _init_stored_always(self) -> None:
        for entity_id in self._always_all:
            self._all[entity_id] = None

    def add_component(self, entity_id: int, component_name: str) -> None:
        if entity_id not in self._all:
            self._specific.setdefault(entity_id, {})[component_name] = None

    def add_all_components(self, entity_id: int) -> None:
        self._specific.pop(entity_id, None)
        self._all[entity_id] = None

    def clear(self) -> None:
        self._specific.clear()
        self._all.clear()
        self._init_stored_always()

    def is_logged_component(self, entity_id: int, component_name: str) -> bool:
        if entity_id in self._all:
            return component_name not in COMPONENTS_NOT_STORED_ON_ALL
        return component_name in self._specific.get(entity_id, {})

    def are_all_components_stored(self, entity_id: int) -> bool:
        return entity_id in self._all

    def get_entities(self) -> list[int]:
        return [*self._specific, *self._all]

    def get_components(self, entity_id: int) -> list[str]:
        return list(self._specific.get(entity_id, {}))