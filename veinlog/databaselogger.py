"""The database logger entity: opens logger databases and records component values."""

from __future__ import annotations

import errno
import logging
import os
import time
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any, Protocol

from veinlog.contentsets import LoggerContentSetConfig
from veinlog.events import (
    AVAILABLE_CONTENT_SETS,
    CURRENT_CONTENT_SETS,
    CUSTOMER_DATA,
    DATABASE_FILE,
    DATABASE_READY,
    GUI_CONTEXT,
    LOGGED_COMPONENTS,
    LOGGING_ENABLED,
    SCHEDULED_LOGGING_COUNTDOWN,
    SCHEDULED_LOGGING_DURATION,
    SCHEDULED_LOGGING_ENABLED,
    SESSION_NAME,
    TRANSACTION_NAME,
    CommandEvent,
    ComponentCommand,
    ComponentData,
    ComponentInfo,
    DatabaseCommandInterface,
    EventOrigin,
    EventSubtype,
    EventTarget,
    RemoteProcedureData,
    RpcCommand,
    client_set_event,
)
from veinlog.loggedcomponents import (
    LoggedComponents,
    remove_not_stored_on_entities_storing_all_components,
)
from veinlog.loggerbase import (
    NO_DATABASE_SELECTED,
    RPC_DELETE_SESSION,
    RPC_DISPLAY_SESSIONS_INFOS,
    LoggerEntity,
    SendEvent,
    StorageMode,
)

_log = logging.getLogger(__name__)

CUSTOMER_DATA_ENTITY_ID = 200
STATUS_ENTITY_ID = 1150
BATCH_INTERVAL_SECONDS = 5.0
RPC_RETURN_VALUE = "ReturnValue"

LOGGING_DATA = "Logging data"
DATABASE_LOADED = "Database loaded"
DATABASE_ERROR = "Database error"


class VeinStorage(Protocol):
    """Read access to the stored component values of all entities."""

    def has_entity(self, entity_id: int) -> bool: ...

    def has_stored_value(self, entity_id: int, component_name: str) -> bool: ...

    def get_stored_value(self, entity_id: int, component_name: str) -> Any: ...

    def get_component_list(self, entity_id: int) -> list[str]: ...


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    return ""


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ("", "0", "false")
    if isinstance(value, (bool, int, float)):
        return bool(value)
    return False


def _to_int(value: Any) -> int | None:
    """Integer value of value, or None when it has none."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return round(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _to_string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [_to_text(item) for item in value]
    return []


class DatabaseLogger(LoggerEntity):
    """Logs component values of chosen entities into a logger database.

    The database created by the factory reports back by calling
    on_db_ready, on_db_error and update_session_list on this logger.
    The owner calls on_scheduler_countdown periodically; it publishes the
    remaining scheduled time, stops scheduled logging when time is up and
    runs due batched writes.
    """

    def __init__(
        self,
        vein_storage: VeinStorage,
        factory: Callable[[], Any],
        send_event: SendEvent,
        content_set_config: LoggerContentSetConfig | None = None,
        entities_with_all_components_stored_always: Iterable[int] = (),
        storage_mode: StorageMode = StorageMode.TEXT,
    ) -> None:
        super().__init__(storage_mode, send_event)
        self._storage = vein_storage
        self._factory = factory
        self._content_config = content_set_config if content_set_config is not None else LoggerContentSetConfig()
        self._logged = LoggedComponents(entities_with_all_components_stored_always)
        self._commands = DatabaseCommandInterface()
        self._database: Any = None
        self._database_file_path = ""
        self._db_ready = False
        self._logging_active = False
        self._scheduled_logging = False
        self._schedule_interval_ms = 0
        self._schedule_deadline: float | None = None
        self._last_batch = 0.0
        self._content_sets: list[str] = []
        self._transaction_name = ""
        self._session_name = ""
        self._transaction_id = 0
        self._gui_context = ""
        self._rpcs: dict[str, Callable[[dict[str, Any]], Any]] = {}
        self.last_error = ""
        if vein_storage.has_stored_value(0, "Session"):
            session = vein_storage.get_stored_value(0, "Session")
            if session is not None:
                self.on_modman_session_change(session)

    # -- state ---------------------------------------------------------

    @property
    def database(self) -> Any:
        return self._database

    @property
    def database_file_path(self) -> str:
        return self._database_file_path

    @property
    def db_ready(self) -> bool:
        return self._db_ready

    @property
    def logging_active(self) -> bool:
        return self._logging_active

    @property
    def scheduled_logging(self) -> bool:
        return self._scheduled_logging

    @property
    def session_name(self) -> str:
        return self._session_name

    @property
    def transaction_name(self) -> str:
        return self._transaction_name

    @property
    def gui_context(self) -> str:
        return self._gui_context

    @property
    def content_sets(self) -> list[str]:
        return list(self._content_sets)

    @property
    def logged_components(self) -> LoggedComponents:
        return self._logged

    def init_once(self) -> None:
        super().init_once()
        self._rpcs = {
            RPC_DELETE_SESSION: self.rpc_delete_session,
            RPC_DISPLAY_SESSIONS_INFOS: self.rpc_display_sessions_infos,
        }

    # -- event processing ----------------------------------------------

    def process_event(self, event: CommandEvent) -> None:
        """Record notifications while logging and handle transactions to this entity."""
        data = event.data
        is_log_running = self._db_ready and self._logging_active
        if isinstance(data, ComponentData):
            if is_log_running and event.subtype == EventSubtype.NOTIFICATION:
                self._add_value_to_db(data.new_value, data.entity_id, data.component_name)
            elif event.subtype == EventSubtype.TRANSACTION and data.entity_id == self.entity_id:
                if data.command == ComponentCommand.CCMD_SET:
                    self._process_component_set(data, is_log_running)
                    event.accept()
        elif isinstance(data, RemoteProcedureData) and data.entity_id == self.entity_id:
            if data.command == RpcCommand.RPCMD_CALL:
                self._process_rpc_call(event, data)

    def _process_component_set(self, data: ComponentData, is_log_running: bool) -> None:
        name = data.component_name
        new_value = data.new_value
        if name == LOGGED_COMPONENTS:
            self._handle_logged_components_set(data)
        elif name == DATABASE_FILE:
            if self._database is None or new_value != self._database_file_path:
                if not _to_text(new_value):
                    self.close_database()
                else:
                    self.open_database(_to_text(new_value))
            self._send_server_set(SESSION_NAME, data.old_value, "")
            self._session_name = ""
        elif name == LOGGING_ENABLED:
            enabled = _to_bool(new_value)
            if enabled:
                if self._check_conditions_for_start_log():
                    self._prepare_logging()
                    self.set_logging_enabled(True)
            else:
                self.set_logging_enabled(False)
        elif name == SCHEDULED_LOGGING_ENABLED:
            scheduled = _to_bool(new_value)
            if scheduled != self._scheduled_logging:
                self._scheduled_logging = scheduled
                self.set_logging_enabled(False)
                self._send_server_set(SCHEDULED_LOGGING_ENABLED, data.old_value, scheduled)
        elif name == SCHEDULED_LOGGING_DURATION:
            duration_ms = _to_int(new_value)
            if duration_ms is not None and duration_ms > 0:
                self._schedule_interval_ms = duration_ms
                if is_log_running:
                    self._start_schedule()
                self._send_server_set(SCHEDULED_LOGGING_DURATION, data.old_value, new_value)
            else:
                self.send_error(data, f"Invalid logging duration: {_to_text(new_value)}")
        elif name == SESSION_NAME:
            self._session_name = _to_text(new_value)
            self._send_server_set(SESSION_NAME, data.old_value, new_value)
            customer_data_name = ""
            if self._session_name:
                if self._db_ready:
                    customer_data_name = self._handle_session_name_set(self._session_name)
                else:
                    _log.warning("Cannot set session '%s' - database is not ready yet!", self._session_name)
            self._send_server_set(CUSTOMER_DATA, None, customer_data_name)
        elif name == GUI_CONTEXT:
            self._gui_context = _to_text(new_value)
            self._send_server_set(GUI_CONTEXT, data.old_value, new_value)
        elif name == TRANSACTION_NAME:
            self._transaction_name = _to_text(new_value)
            self._send_server_set(TRANSACTION_NAME, data.old_value, new_value)
        elif name == CURRENT_CONTENT_SETS:
            self._handle_content_sets_change(data.old_value, new_value)

    def _process_rpc_call(self, event: CommandEvent, data: RemoteProcedureData) -> None:
        procedure = self._rpcs.get(data.procedure_name)
        if procedure is not None:
            call_id = data.invokation_data.get(RemoteProcedureData.CALL_ID)
            self._call_rpc(procedure, data.procedure_name, call_id, event.peer_id, data.invokation_data)
            event.accept()
        elif not event.accepted:
            _log.warning("No remote procedure with entityId: %s name: %s", self.entity_id, data.procedure_name)
            event.accept()
            self.send_error(data, f"No remote procedure with name: {data.procedure_name}", event.peer_id)

    def _call_rpc(
        self,
        procedure: Callable[[dict[str, Any]], Any],
        procedure_name: str,
        call_id: Any,
        peer_id: Any,
        invokation_data: Mapping[str, Any],
    ) -> None:
        result = dict(invokation_data)
        raw = invokation_data.get(RemoteProcedureData.PARAMETERS)
        parameters = dict(raw) if isinstance(raw, Mapping) else {}
        if "p_session" not in parameters:
            result[RemoteProcedureData.RESULT_CODE] = -errno.EINVAL
            result[RemoteProcedureData.ERROR_MESSAGE] = "Missing required parameters: [p_session]"
        else:
            try:
                result[RPC_RETURN_VALUE] = procedure(parameters)
                result[RemoteProcedureData.RESULT_CODE] = 0
            except RuntimeError as error:
                result[RemoteProcedureData.RESULT_CODE] = -errno.EINVAL
                result[RemoteProcedureData.ERROR_MESSAGE] = str(error)
        answer = RemoteProcedureData(
            entity_id=self.entity_id,
            command=RpcCommand.RPCMD_RESULT,
            procedure_name=procedure_name,
            invokation_data=result,
            origin=EventOrigin.EO_LOCAL,
            target=EventTarget.ET_ALL,
        )
        self._send(CommandEvent(EventSubtype.NOTIFICATION, answer, peer_id=peer_id))

    # -- logged components and content sets ----------------------------

    def _handle_logged_components_set(self, data: ComponentData) -> None:
        if data.old_value != data.new_value:
            self._handle_logged_components_change(data.new_value)
        self._send_server_set(data.component_name, data.old_value, data.new_value)

    def _handle_logged_components_change(self, new_value: Any) -> None:
        if not isinstance(new_value, Mapping):
            _log.warning("Logged components: wrong type")
            return
        self._logged.clear()
        for entity_text, components in new_value.items():
            entity_id = _to_int(entity_text) or 0
            component_list = list(components) if isinstance(components, (list, tuple)) else []
            if component_list:
                for component in component_list:
                    self._logged.add_component(entity_id, _to_text(component))
            else:
                self._logged.add_all_components(entity_id)

    def _handle_content_sets_change(self, old_value: Any, new_value: Any) -> None:
        self._content_sets = _to_string_list(new_value)
        logged = self._content_config.component_from_content_sets(self._content_sets)
        self._logged.clear()
        self._send(client_set_event(self.entity_id, LOGGED_COMPONENTS, None, logged))
        self._send_server_set(CURRENT_CONTENT_SETS, old_value, new_value)

    def on_modman_session_change(self, new_session: Any) -> None:
        """Load the content sets of a new session and publish their names."""
        for entry in self._content_config.get_config_environment():
            entry.handler.set_session(_to_text(new_session))
        available = list(self._content_config.get_available_content_sets())
        self._send_server_set(AVAILABLE_CONTENT_SETS, None, available)

    # -- logging -------------------------------------------------------

    def _check_conditions_for_start_log(self) -> bool:
        valid = True
        if not self._db_ready:
            valid = False
            _log.warning("Logging requires a database!")
        if not self._session_name:
            valid = False
            _log.warning("Logging requires a valid sessionName!")
        if not self._transaction_name:
            valid = False
            _log.warning("Logging requires a valid transactionName!")
        return valid

    def _prepare_logging(self) -> None:
        self._transaction_id = self._database.add_transaction(
            self._transaction_name, self._session_name, list(self._content_sets), self._gui_context
        )
        self._database.add_start_time(self._transaction_id, datetime.now())
        self._write_current_storage_to_db()

    def _components_filtered_for_db(self, entity_id: int) -> list[str]:
        return remove_not_stored_on_entities_storing_all_components(self._storage.get_component_list(entity_id))

    def _write_current_storage_to_db(self) -> None:
        for entity_id in self._logged.get_entities():
            if self._logged.are_all_components_stored(entity_id):
                components = self._components_filtered_for_db(entity_id)
            else:
                components = self._logged.get_components(entity_id)
            for component in components:
                if self._storage.has_stored_value(entity_id, component):
                    self._add_value_to_db(self._storage.get_stored_value(entity_id, component), entity_id, component)

    def _entity_name_of(self, entity_id: int) -> str:
        return _to_text(self._storage.get_stored_value(entity_id, "EntityName"))

    def _add_value_to_db(self, value: Any, entity_id: int, component_name: str) -> None:
        if self._logged.is_logged_component(entity_id, component_name):
            info = ComponentInfo(entity_id, self._entity_name_of(entity_id), component_name, value, datetime.now())
            self._commands.add_logged_value(self._session_name, [self._transaction_id], info)
        self._run_batched_if_due()

    def _run_batched_if_due(self) -> None:
        if self._logging_active and time.monotonic() - self._last_batch >= BATCH_INTERVAL_SECONDS:
            self._last_batch = time.monotonic()
            self._commands.flush_to_db()

    def _start_schedule(self) -> None:
        self._schedule_deadline = time.monotonic() + self._schedule_interval_ms / 1000.0

    def _remaining_ms(self) -> int:
        if self._schedule_deadline is None:
            return 0
        return max(0, int((self._schedule_deadline - time.monotonic()) * 1000))

    def set_logging_enabled(self, enabled: bool) -> None:
        """Start or stop logging and publish the new state."""
        if enabled == self._logging_active:
            return
        if enabled:
            self._last_batch = time.monotonic()
            if self._scheduled_logging:
                self._start_schedule()
            self.status_text_to_vein(LOGGING_DATA)
        else:
            self._schedule_deadline = None
            self._commands.flush_to_db()
            self.status_text_to_vein(DATABASE_LOADED)
        self._logging_active = enabled
        self._send_server_set(LOGGING_ENABLED, None, enabled)

    def on_scheduler_countdown(self) -> None:
        """Publish the remaining scheduled time, stopping logging once it has run out."""
        if self._schedule_deadline is not None:
            remaining = self._remaining_ms()
            if remaining <= 0:
                self.set_logging_enabled(False)
            else:
                self._send_server_set(SCHEDULED_LOGGING_COUNTDOWN, None, remaining)
        self._run_batched_if_due()

    # -- database ------------------------------------------------------

    def _check_db_file_path(self, file_path: str) -> bool:
        if not os.path.isabs(file_path):
            self.on_db_error(f"Relative paths are not accepted: {file_path}")
            return False
        parent = os.path.dirname(os.path.abspath(file_path))
        if not os.path.isdir(parent):
            try:
                os.makedirs(parent, exist_ok=True)
            except OSError:
                pass
        if not os.path.isdir(parent):
            self.on_db_error(f"Parent directory for path does not exist: {file_path}")
            return False
        if os.path.isfile(file_path) or not os.path.exists(file_path):
            return True
        self.on_db_error(f"Path is not a valid file location: {file_path}")
        return False

    def _terminate_current_db(self) -> None:
        self._database = None
        self._commands = DatabaseCommandInterface()

    def open_database(self, file_path: str) -> None:
        """Create a database through the factory and ask it to open file_path."""
        self._database_file_path = file_path
        _log.info("Open database %s", file_path)
        if self._check_db_file_path(file_path):
            self._terminate_current_db()
            self._database = self._factory()
            self._database.set_storage_mode(self.storage_mode)
            self._commands.connect_db(self._database)
            self._commands.open_database(file_path)

    def close_database(self) -> None:
        """Stop logging, drop the database and publish the unloaded state."""
        if not self._database_file_path:
            return
        self._db_ready = False
        self.set_logging_enabled(False)
        self._terminate_current_db()
        self._send_server_set(DATABASE_READY, None, False)
        self.set_logging_enabled(False)
        self.status_text_to_vein(NO_DATABASE_SELECTED)
        closed = self._database_file_path
        self._database_file_path = ""
        self.db_name_to_vein(self._database_file_path)
        self._send_server_set(CUSTOMER_DATA, None, "")
        self.update_session_list([])
        _log.info("Unloaded database: %s", closed)

    def check_database_still_valid(self) -> None:
        """Treat a vanished database file as a database error."""
        if not os.path.exists(self._database_file_path):
            self.on_db_error(f"Watcher detected database file {self._database_file_path} is gone!")

    def on_db_ready(self) -> None:
        self._send_server_set(DATABASE_READY, None, True)
        self.set_logging_enabled(False)
        self._db_ready = True
        self.status_text_to_vein(DATABASE_LOADED)
        self.db_name_to_vein(self._database_file_path)

    def on_db_error(self, error_msg: str) -> None:
        _log.warning("%s", error_msg)
        self.close_database()
        self.status_text_to_vein(DATABASE_ERROR)
        self.last_error = error_msg

    def _handle_session_name_set(self, session_name: str) -> str:
        if not self._database.has_session_name(session_name):
            static_data: list[ComponentInfo] = []
            for entity_id in (CUSTOMER_DATA_ENTITY_ID, STATUS_ENTITY_ID):
                if not self._storage.has_entity(entity_id):
                    continue
                entity_name = self._entity_name_of(entity_id)
                for component in self._components_filtered_for_db(entity_id):
                    static_data.append(
                        ComponentInfo(
                            entity_id,
                            entity_name,
                            component,
                            self._storage.get_stored_value(entity_id, component),
                            datetime.now(),
                        )
                    )
            customer_data_name = _to_text(self._storage.get_stored_value(CUSTOMER_DATA_ENTITY_ID, "FileSelected"))
            self._commands.add_session(session_name, static_data)
            return customer_data_name
        return _to_text(self._database.read_session_component(session_name, "CustomerData", "FileSelected"))

    # -- remote procedures ---------------------------------------------

    def _require_database(self) -> Any:
        if self._database is None:
            raise RuntimeError("No database open")
        return self._database

    def rpc_delete_session(self, parameters: Mapping[str, Any]) -> Any:
        """Delete a session; deleting the current session also unsets the session name."""
        session = _to_text(parameters.get("p_session"))
        result = self._require_database().delete_session(session)
        if session == self._session_name:
            self._session_name = ""
            data = ComponentData(
                entity_id=self.entity_id,
                component_name=SESSION_NAME,
                command=ComponentCommand.CCMD_SET,
                new_value="",
                origin=EventOrigin.EO_LOCAL,
                target=EventTarget.ET_ALL,
            )
            self._send(CommandEvent(EventSubtype.NOTIFICATION, data))
        return result

    def rpc_display_sessions_infos(self, parameters: Mapping[str, Any]) -> Any:
        """Information the database holds about one session."""
        session = _to_text(parameters.get("p_session"))
        infos = self._require_database().display_sessions_infos(session)
        return infos.get(session) if isinstance(infos, Mapping) else None