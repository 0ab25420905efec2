"""Configuration of the content handlers that define loggable content sets."""

from __future__ import annotations

from dataclasses import dataclass

from veinlog.componentunion import unite_components
from veinlog.contentloaders import LoggerContentHandler


@dataclass
class LoggerContentConfigEntry:
    config_file_dir: str
    handler: LoggerContentHandler


class LoggerContentSetConfig:
    """The set of content handlers consulted for content sets."""

    def __init__(self) -> None:
        self._entries: list[LoggerContentConfigEntry] = []

    def set_json_environment(self, config_file_dir: str, handler: LoggerContentHandler) -> None:
        entry = LoggerContentConfigEntry(config_file_dir, handler)
        entry.handler.set_config_file_dir(entry.config_file_dir)
        self._entries.append(entry)

    def get_config_environment(self) -> list[LoggerContentConfigEntry]:
        return list(self._entries)

    def get_available_content_sets(self) -> list[str]:
        return [name for entry in self._entries for name in entry.handler.get_available_content_sets()]

    def component_from_content_sets(self, content_sets: list[str]) -> dict[str, list[str]]:
        """Union of the entity components of all given content sets, keyed by entity id text."""
        united: dict[int, list[str]] = {}
        for content_set in content_sets:
            for entry in self._entries:
                for entity_id, components in sorted(entry.handler.get_entity_components(content_set).items()):
                    unite_components(united, entity_id, components)
        result = {str(entity_id): components for entity_id, components in united.items()}
        return dict(sorted(result.items()))