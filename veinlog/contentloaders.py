"""Handlers that read logger content sets from JSON configuration files."""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any

_log = logging.getLogger(__name__)

ZERA_ALL = "ZeraAll"


def load_json_file(path: str) -> dict[str, Any]:
    """Read a JSON object from path; an unreadable or non-object file gives an empty dict."""
    try:
        with open(path, encoding="utf-8") as handle:
            document = json.load(handle)
    except (OSError, ValueError) as error:
        _log.warning("Could not load JSON file %s: %s", path, error)
        return {}
    if not isinstance(document, dict):
        _log.warning("JSON file %s does not hold an object", path)
        return {}
    return document


def _json_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return 0


def _json_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _json_member(value: Any, key: str) -> Any:
    return value.get(key) if isinstance(value, dict) else None


class LoggerContentHandler(ABC):
    """Source of named content sets, each mapping entity ids to component names."""

    @abstractmethod
    def set_config_file_dir(self, directory: str) -> None:
        """Set the directory that holds the configuration files."""

    @abstractmethod
    def set_session(self, session: str) -> None:
        """Load the content sets belonging to a session."""

    @abstractmethod
    def get_available_content_sets(self) -> list[str]:
        """Names of the content sets of the current session."""

    @abstractmethod
    def get_entity_components(self, content_set_name: str) -> dict[int, list[str]]:
        """Entity ids with their components; an empty list means all components."""


class _JsonFileContentHandler(LoggerContentHandler):
    def __init__(self) -> None:
        self._config_file_dir = ""
        self._content: dict[str, Any] = {}

    def set_config_file_dir(self, directory: str) -> None:
        self._config_file_dir = directory

    def set_session(self, session: str) -> None:
        self._content = load_json_file(os.path.normpath(os.path.join(self._config_file_dir, session)))


class JsonLoggerContentLoader(_JsonFileContentHandler):
    """Content sets listed by name in a per-session JSON file."""

    def get_available_content_sets(self) -> list[str]:
        return list(self._content)

    def get_entity_components(self, content_set_name: str) -> dict[int, list[str]]:
        result: dict[int, list[str]] = {}
        for entry in _json_list(self._content.get(content_set_name)):
            entity_id = _json_int(_json_member(entry, "EntityId"))
            components = _json_list(_json_member(entry, "Components"))
            result[entity_id] = [c if isinstance(c, str) else "" for c in components]
        return dict(sorted(result.items()))


class JsonLoggerContentSessionLoader(_JsonFileContentHandler):
    """A single content set holding every module of a session file."""

    def get_available_content_sets(self) -> list[str]:
        return [ZERA_ALL] if _json_list(self._content.get("modules")) else []

    def get_entity_components(self, content_set_name: str) -> dict[int, list[str]]:
        result: dict[int, list[str]] = {}
        if self.get_available_content_sets() and content_set_name == ZERA_ALL:
            for entry in _json_list(self._content.get("modules")):
                result[_json_int(_json_member(entry, "id"))] = []
        return dict(sorted(result.items()))