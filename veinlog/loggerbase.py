"""The logger entity: its identity, initial components and status notifications."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterable
from typing import Any

from veinlog.events import (
    AVAILABLE_CONTENT_SETS,
    CURRENT_CONTENT_SETS,
    CUSTOMER_DATA,
    DATABASE_FILE,
    DATABASE_READY,
    ENTITY_NAME,
    EXISTING_SESSIONS,
    GUI_CONTEXT,
    LOGGED_COMPONENTS,
    LOGGING_ENABLED,
    LOGGING_STATUS,
    SCHEDULED_LOGGING_COUNTDOWN,
    SCHEDULED_LOGGING_DURATION,
    SCHEDULED_LOGGING_ENABLED,
    SESSION_NAME,
    TRANSACTION_NAME,
    CommandEvent,
    ComponentCommand,
    ComponentData,
    EntityCommand,
    EntityData,
    ErrorData,
    EventOrigin,
    EventSubtype,
    EventTarget,
    server_set_event,
)

_log = logging.getLogger(__name__)

SendEvent = Callable[[CommandEvent], Any]

NO_DATABASE_SELECTED = "No database selected"
RPC_DELETE_SESSION = "RPC_deleteSession"
RPC_DISPLAY_SESSIONS_INFOS = "RPC_displaySessionsInfos"


class StorageMode(enum.Enum):
    """How the logger database stores values; each mode runs as its own entity."""

    TEXT = "text"
    BINARY = "binary"


_IDENTITIES: dict[StorageMode, tuple[int, str]] = {
    StorageMode.TEXT: (2, "_LoggingSystem"),
    StorageMode.BINARY: (200000, "_BinaryLoggingSystem"),
}


class LoggerEntity:
    """The entity a database logger exposes, with helpers to publish its state."""

    def __init__(self, storage_mode: StorageMode = StorageMode.TEXT, send_event: SendEvent | None = None) -> None:
        if send_event is None:
            raise ValueError("send_event callback is required")
        self.storage_mode = storage_mode
        self.entity_id, self.entity_name = _IDENTITIES[storage_mode]
        self._send_event = send_event
        self._init_done = False
        self._status_text = ""
        kind = "plaintext" if storage_mode is StorageMode.TEXT else "binary"
        _log.info("Created %s logger: %s with id: %s", kind, self.entity_name, self.entity_id)

    @property
    def initialized(self) -> bool:
        return self._init_done

    @property
    def status_text(self) -> str:
        return self._status_text

    def initial_components(self) -> dict[str, Any]:
        """The components of the entity with the values they start with."""
        return {
            ENTITY_NAME: self.entity_name,
            LOGGING_ENABLED: False,
            LOGGING_STATUS: NO_DATABASE_SELECTED,
            DATABASE_READY: False,
            DATABASE_FILE: "",
            SCHEDULED_LOGGING_ENABLED: False,
            SCHEDULED_LOGGING_DURATION: None,
            SCHEDULED_LOGGING_COUNTDOWN: 0,
            EXISTING_SESSIONS: [],
            CUSTOMER_DATA: "",
            LOGGED_COMPONENTS: {},
            SESSION_NAME: "",
            GUI_CONTEXT: "",
            TRANSACTION_NAME: "",
            CURRENT_CONTENT_SETS: [],
            AVAILABLE_CONTENT_SETS: [],
        }

    def _send(self, event: CommandEvent) -> CommandEvent:
        self._send_event(event)
        return event

    def _send_server_set(self, component_name: str, old_value: Any, new_value: Any) -> CommandEvent:
        return self._send(server_set_event(self.entity_id, component_name, old_value, new_value))

    def init_once(self) -> None:
        """Announce the entity and its components; later calls do nothing."""
        if self._init_done:
            return
        self._send(
            CommandEvent(EventSubtype.NOTIFICATION, EntityData(entity_id=self.entity_id, command=EntityCommand.ECMD_ADD))
        )
        for name, value in self.initial_components().items():
            data = ComponentData(
                entity_id=self.entity_id,
                component_name=name,
                command=ComponentCommand.CCMD_ADD,
                new_value=value,
                origin=EventOrigin.EO_LOCAL,
                target=EventTarget.ET_ALL,
            )
            self._send(CommandEvent(EventSubtype.NOTIFICATION, data))
        self._init_done = True

    def status_text_to_vein(self, status: str) -> CommandEvent | None:
        """Publish a new status text; an unchanged text is not sent again."""
        if status == self._status_text:
            return None
        self._status_text = status
        return self._send_server_set(LOGGING_STATUS, None, status)

    def db_name_to_vein(self, file_path: str) -> CommandEvent:
        return self._send_server_set(DATABASE_FILE, None, file_path)

    def update_session_list(self, session_names: Iterable[str]) -> CommandEvent:
        return self._send_server_set(EXISTING_SESSIONS, None, list(session_names))

    def send_error(self, original_data: Any, description: str, peer_id: Any = None) -> CommandEvent:
        """Report that an event addressed to this entity could not be handled."""
        error = ErrorData(
            entity_id=self.entity_id,
            error_description=description,
            original_data=original_data,
            origin=EventOrigin.EO_LOCAL,
            target=EventTarget.ET_ALL,
        )
        return self._send(CommandEvent(EventSubtype.NOTIFICATION, error, peer_id=peer_id))