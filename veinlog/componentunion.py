"""Merging of entity component lists, where an empty list means all components."""

from __future__ import annotations


def _is_all(components: list[str]) -> bool:
    return not components


def unite_components(
    result_map: dict[int, list[str]], entity_id: int, components_to_set: list[str]
) -> dict[int, list[str]]:
    """Merge components into result_map for entity_id and return result_map.

    An empty component list stands for all components and absorbs any other list.
    """
    if _is_all(components_to_set):
        result_map[entity_id] = list(components_to_set)
    elif entity_id not in result_map or not _is_all(result_map[entity_id]):
        result_map.setdefault(entity_id, []).extend(components_to_set)
    result_map[entity_id] = list(dict.fromkeys(result_map.get(entity_id, [])))
    return result_map