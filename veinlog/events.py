"""Event data exchanged between systems and the command channel to a logger database."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

ENTITY_NAME = "EntityName"
LOGGING_STATUS = "LoggingStatus"
LOGGING_ENABLED = "LoggingEnabled"
DATABASE_READY = "DatabaseReady"
DATABASE_FILE = "DatabaseFile"
SCHEDULED_LOGGING_ENABLED = "ScheduledLoggingEnabled"
SCHEDULED_LOGGING_DURATION = "ScheduledLoggingDuration"
SCHEDULED_LOGGING_COUNTDOWN = "ScheduledLoggingCountdown"
EXISTING_SESSIONS = "ExistingSessions"
CUSTOMER_DATA = "CustomerData"
SESSION_NAME = "sessionName"
GUI_CONTEXT = "guiContext"
TRANSACTION_NAME = "transactionName"
CURRENT_CONTENT_SETS = "currentContentSets"
AVAILABLE_CONTENT_SETS = "availableContentSets"
LOGGED_COMPONENTS = "LoggedComponents"


class EventSubtype(enum.Enum):
    """Whether an event is a request (transaction) or a confirmed change (notification)."""

    NOTIFICATION = "notification"
    TRANSACTION = "transaction"


class EventOrigin(enum.Enum):
    EO_LOCAL = "local"
    EO_FOREIGN = "foreign"


class EventTarget(enum.Enum):
    ET_ALL = "all"
    ET_LOCAL = "local"
    ET_IRRELEVANT = "irrelevant"


class ComponentCommand(enum.Enum):
    CCMD_ADD = "add"
    CCMD_REMOVE = "remove"
    CCMD_SET = "set"
    CCMD_FETCH = "fetch"


class RpcCommand(enum.Enum):
    RPCMD_REGISTER = "register"
    RPCMD_CALL = "call"
    RPCMD_RESULT = "result"
    RPCMD_PROGRESS = "progress"


class EntityCommand(enum.Enum):
    ECMD_ADD = "add"
    ECMD_REMOVE = "remove"
    ECMD_SUBSCRIBE = "subscribe"
    ECMD_UNSUBSCRIBE = "unsubscribe"


@dataclass
class _EventData:
    entity_id: int = 0
    origin: EventOrigin = EventOrigin.EO_LOCAL
    target: EventTarget = EventTarget.ET_ALL


@dataclass
class ComponentData(_EventData):
    """A change to one component of an entity."""

    component_name: str = ""
    command: ComponentCommand = ComponentCommand.CCMD_SET
    new_value: Any = None
    old_value: Any = None


@dataclass
class RemoteProcedureData(_EventData):
    """A remote procedure registration, call, progress report or result."""

    CALL_ID = "callId"
    PARAMETERS = "parameters"
    RESULT_CODE = "resultCode"
    ERROR_MESSAGE = "errorMessage"

    command: RpcCommand = RpcCommand.RPCMD_CALL
    procedure_name: str = ""
    invokation_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class EntityData(_EventData):
    """Adding or removing an entity."""

    command: EntityCommand = EntityCommand.ECMD_ADD


@dataclass
class ErrorData(_EventData):
    """Reports that an event could not be handled."""

    error_description: str = ""
    original_data: Any = None


@dataclass
class CommandEvent:
    """An event carrying one piece of event data."""

    subtype: EventSubtype
    data: _EventData
    peer_id: Any = None
    accepted: bool = False

    def accept(self) -> None:
        self.accepted = True


def server_set_event(entity_id: int, component_name: str, old_value: Any, new_value: Any) -> CommandEvent:
    """Build the notification a server sends after changing a component."""
    data = ComponentData(
        entity_id=entity_id,
        component_name=component_name,
        command=ComponentCommand.CCMD_SET,
        old_value=old_value,
        new_value=new_value,
    )
    return CommandEvent(EventSubtype.NOTIFICATION, data)


def client_set_event(entity_id: int, component_name: str, old_value: Any, new_value: Any) -> CommandEvent:
    """Build the transaction a client sends to request a component change."""
    data = ComponentData(
        entity_id=entity_id,
        component_name=component_name,
        command=ComponentCommand.CCMD_SET,
        old_value=old_value,
        new_value=new_value,
    )
    return CommandEvent(EventSubtype.TRANSACTION, data)


@dataclass
class ComponentInfo:
    """A component value as stored in the logger database."""

    entity_id: int
    entity_name: str
    component_name: str
    value: Any
    timestamp: datetime


class LoggerDatabase(Protocol):
    def on_open(self, file_path: str) -> Any: ...

    def add_logged_value(self, session_name: str, transaction_ids: list[int], component: ComponentInfo) -> Any: ...

    def add_session(self, session_name: str, static_data: list[ComponentInfo]) -> Any: ...

    def run_batched_execution(self) -> Any: ...


class DatabaseCommandInterface:
    """Forwards logger commands to every connected database."""

    def __init__(self) -> None:
        self._databases: list[LoggerDatabase] = []

    def connect_db(self, db: LoggerDatabase) -> None:
        self._databases.append(db)

    def open_database(self, file_path: str) -> None:
        for db in self._databases:
            db.on_open(file_path)

    def add_logged_value(self, session_name: str, transaction_ids: list[int], component: ComponentInfo) -> None:
        for db in self._databases:
            db.add_logged_value(session_name, list(transaction_ids), component)

    def add_session(self, session_name: str, static_data: list[ComponentInfo]) -> None:
        for db in self._databases:
            db.add_session(session_name, list(static_data))

    def flush_to_db(self) -> None:
        for db in self._databases:
            db.run_batched_execution()