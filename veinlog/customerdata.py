"""The customer data entity: selection, editing and management of customer data files."""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Callable, Mapping
from typing import Any

from veinlog.customerfiles import (
    COMPONENT_DESCRIPTIONS,
    CUSTOMER_DATA_ADD,
    CUSTOMER_DATA_REMOVE,
    CUSTOMER_DATA_SEARCH,
    ENTITY_ID,
    ENTITY_NAME,
    ENTITY_NAME_COMPONENT,
    FILE_SELECTED_COMPONENT,
    INTROSPECTION_COMPONENT,
    PROCEDURE_DESCRIPTIONS,
    SEARCH_RESULT_TEXT,
    WRITE_PROTECTED_COMPONENTS,
    CustomerDataError,
    CustomerDataStore,
    ResultCode,
    data_component_names,
)
from veinlog.events import (
    CommandEvent,
    ComponentCommand,
    ComponentData,
    EntityCommand,
    EntityData,
    ErrorData,
    EventOrigin,
    EventSubtype,
    EventTarget,
    RemoteProcedureData,
    RpcCommand,
)

_log = logging.getLogger(__name__)

SendEvent = Callable[[CommandEvent], Any]
ErrorCallback = Callable[[str], Any]


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return ""


def _to_map(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def _missing_parameters(parameters: Mapping[str, Any], required: set[str]) -> list[str]:
    return sorted(required - set(parameters))


class CustomerDataSystem:
    """Entity holding the values of the currently selected customer data file.

    Changes to data components are written back to the file; the write is
    deferred until flush_pending_write() is called, so several changes made
    in short succession are written once.
    """

    def __init__(
        self,
        customer_data_path: str,
        send_event: SendEvent,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._store = CustomerDataStore(customer_data_path)
        self._send_event = send_event
        self._on_error = on_error
        self._current_file_name = ""
        self._current_document: dict[str, Any] = {}
        self._write_pending = False
        self._pending_rpcs: dict[Any, Any] = {}
        self._procedures: dict[str, Callable[[Any, dict[str, Any]], None]] = {
            CUSTOMER_DATA_ADD: self.customer_data_add,
            CUSTOMER_DATA_REMOVE: self.customer_data_remove,
            CUSTOMER_DATA_SEARCH: self.customer_data_search,
        }

    @property
    def store(self) -> CustomerDataStore:
        return self._store

    @property
    def current_file_name(self) -> str:
        return self._current_file_name

    @property
    def write_pending(self) -> bool:
        return self._write_pending

    def get_component_names(self) -> list[str]:
        return list(COMPONENT_DESCRIPTIONS)

    # -- event sending -------------------------------------------------

    def _notify(self, data: Any, peer_id: Any = None) -> None:
        data.origin = EventOrigin.EO_LOCAL
        data.target = EventTarget.ET_ALL
        self._send_event(CommandEvent(EventSubtype.NOTIFICATION, data, peer_id=peer_id))

    def _send_component(self, name: str, command: ComponentCommand, value: Any) -> None:
        self._notify(ComponentData(entity_id=ENTITY_ID, component_name=name, command=command, new_value=value))

    def _send_error(self, event: CommandEvent, description: str) -> None:
        error = ErrorData(entity_id=ENTITY_ID, error_description=description, original_data=event.data)
        event.accept()
        self._notify(error, event.peer_id)

    # -- event processing ----------------------------------------------

    def process_event(self, event: CommandEvent) -> None:
        """Handle transactions addressed to this entity."""
        data = event.data
        if event.subtype == EventSubtype.NOTIFICATION or data.entity_id != ENTITY_ID:
            return
        if isinstance(data, ComponentData):
            if data.command == ComponentCommand.CCMD_SET:
                self._process_component_set(event, data)
        elif isinstance(data, RemoteProcedureData):
            if data.command == RpcCommand.RPCMD_CALL:
                self._process_rpc_call(event, data)

    def _process_component_set(self, event: CommandEvent, data: ComponentData) -> None:
        validated = False
        name = data.component_name
        if name == FILE_SELECTED_COMPONENT:
            # a pending write belongs to the previously selected file
            self.flush_pending_write()
            # lower case avoids names that differ only in case on case-insensitive hosts
            file_name = _to_text(data.new_value).lower()
            if file_name:
                if self._store.exists(file_name):
                    validated = self._parse_customer_data_file(file_name)
                else:
                    _log.warning("Invalid customerdata file selected: %s", file_name)
                    self._send_error(event, f"Customer data file does not exist: {file_name}")
            else:
                self._unload_file()
        elif name in COMPONENT_DESCRIPTIONS and name not in WRITE_PROTECTED_COMPONENTS:
            self._update_data_file(name, _to_text(data.new_value))
            validated = True

        if validated:
            event.accept()
            self._notify(dataclasses.replace(data), event.peer_id)

    def _process_rpc_call(self, event: CommandEvent, data: RemoteProcedureData) -> None:
        procedure = self._procedures.get(data.procedure_name)
        if procedure is None:
            _log.warning("No remote procedure with entityId: %s name: %s", ENTITY_ID, data.procedure_name)
            self._send_error(event, f"No remote procedure with name: {data.procedure_name}")
            return
        call_id = data.invokation_data.get(RemoteProcedureData.CALL_ID)
        self._pending_rpcs[call_id] = event.peer_id
        event.accept()
        procedure(call_id, dict(data.invokation_data))

    # -- entity setup --------------------------------------------------

    def initialize_entity(self) -> None:
        """Announce the entity, its components, its procedures and its introspection."""
        self._notify(EntityData(entity_id=ENTITY_ID, command=EntityCommand.ECMD_ADD))

        component_info: dict[str, Any] = {}
        for name in self.get_component_names():
            component_info[name] = {"Description": COMPONENT_DESCRIPTIONS[name]}
            value = ENTITY_NAME if name == ENTITY_NAME_COMPONENT else ""
            self._send_component(name, ComponentCommand.CCMD_ADD, value)

        procedure_info: dict[str, Any] = {}
        for name in self._procedures:
            procedure_info[name] = {"Description": PROCEDURE_DESCRIPTIONS[name]}
            self._notify(
                RemoteProcedureData(entity_id=ENTITY_ID, command=RpcCommand.RPCMD_REGISTER, procedure_name=name)
            )

        introspection = {"ComponentInfo": component_info, "ProcedureInfo": procedure_info}
        self._send_component(
            INTROSPECTION_COMPONENT,
            ComponentCommand.CCMD_ADD,
            json.dumps(introspection, indent=4, sort_keys=True) + "\n",
        )

    # -- file handling -------------------------------------------------

    def _unload_file(self) -> None:
        for name in self.get_component_names():
            if name != ENTITY_NAME_COMPONENT:
                self._send_component(name, ComponentCommand.CCMD_SET, "")

    def write_customer_data(self) -> None:
        """Write the current document to the selected file."""
        self._write_pending = False
        try:
            self._store.save(self._current_file_name, self._current_document)
        except CustomerDataError:
            _log.critical("Error writing customerdata json file: %s", self._current_file_name)

    def flush_pending_write(self) -> None:
        """Write the current document if changes are waiting to be written."""
        if self._write_pending:
            self.write_customer_data()

    def _update_data_file(self, component_name: str, new_value: str) -> None:
        if not self._current_file_name:
            return
        if component_name in self._current_document:
            self._current_document[component_name] = new_value
            self._write_pending = True
        else:
            _log.warning("Unknown data entry to add in customerdata json file: %s", component_name)

    def _parse_customer_data_file(self, file_name: str) -> bool:
        try:
            document = self._store.load(file_name)
        except CustomerDataError as error:
            if error.code == ResultCode.CDS_EINVAL:
                self._current_file_name = file_name
                self._current_document = {}
                _log.warning("%s", error.message)
                if self._on_error is not None:
                    self._on_error(error.message)
            else:
                for name in data_component_names():
                    self._send_component(name, ComponentCommand.CCMD_SET, "")
            return False

        self._current_file_name = file_name
        self._current_document = document
        known = set(data_component_names())
        unknown = set(document) - known
        if unknown:
            _log.warning("Unknown data in customerdata json file: %s keys: %s", file_name, sorted(unknown))
        entries = [name for name in document if name in known]
        missing = known - set(entries)
        if missing:
            _log.warning("Missing values in customer data file: %s values: %s", file_name, sorted(missing))
        for name in entries:
            self._send_component(name, ComponentCommand.CCMD_SET, _to_text(document[name]))
        return bool(document)

    # -- remote procedures ---------------------------------------------

    def _send_rpc(self, command: RpcCommand, call_id: Any, procedure_name: str, data: dict[str, Any]) -> None:
        peer_id = self._pending_rpcs.get(call_id)
        self._notify(
            RemoteProcedureData(
                entity_id=ENTITY_ID, command=command, procedure_name=procedure_name, invokation_data=data
            ),
            peer_id,
        )

    def _rpc_finished(self, call_id: Any, procedure_name: str, data: dict[str, Any]) -> None:
        self._send_rpc(RpcCommand.RPCMD_RESULT, call_id, procedure_name, data)
        self._pending_rpcs.pop(call_id, None)

    def _rpc_progress(self, call_id: Any, procedure_name: str, data: dict[str, Any]) -> None:
        self._send_rpc(RpcCommand.RPCMD_PROGRESS, call_id, procedure_name, data)

    @staticmethod
    def _store_error(result: dict[str, Any], error: CustomerDataError) -> None:
        result[RemoteProcedureData.RESULT_CODE] = int(error.code)
        result[RemoteProcedureData.ERROR_MESSAGE] = error.message

    @staticmethod
    def _missing_error(result: dict[str, Any], missing: list[str]) -> None:
        result[RemoteProcedureData.RESULT_CODE] = int(ResultCode.CDS_EINVAL)
        result[RemoteProcedureData.ERROR_MESSAGE] = f"Missing required parameters: [{','.join(missing)}]"

    def customer_data_add(self, call_id: Any, parameters: dict[str, Any]) -> None:
        """Create a new, empty customer data file."""
        params = _to_map(parameters.get(RemoteProcedureData.PARAMETERS))
        result = dict(parameters)
        missing = _missing_parameters(params, {"fileName"})
        if missing:
            self._missing_error(result, missing)
        else:
            try:
                self._store.create(_to_text(params["fileName"]))
                result[RemoteProcedureData.RESULT_CODE] = int(ResultCode.CDS_SUCCESS)
            except CustomerDataError as error:
                self._store_error(result, error)
        self._rpc_finished(call_id, CUSTOMER_DATA_ADD, result)

    def customer_data_remove(self, call_id: Any, parameters: dict[str, Any]) -> None:
        """Delete a customer data file, unloading it when it is the selected one."""
        params = _to_map(parameters.get(RemoteProcedureData.PARAMETERS))
        result = dict(params)
        missing = _missing_parameters(params, {"fileName"})
        if missing:
            self._missing_error(result, missing)
        else:
            file_name = _to_text(params["fileName"])
            try:
                self._store.remove(file_name)
                result[RemoteProcedureData.RESULT_CODE] = int(ResultCode.CDS_SUCCESS)
                if file_name == self._current_file_name:
                    self._current_file_name = ""
                    self._write_pending = False
                    self._unload_file()
            except CustomerDataError as error:
                self._store_error(result, error)
        self._rpc_finished(call_id, CUSTOMER_DATA_REMOVE, result)

    def customer_data_search(self, call_id: Any, parameters: dict[str, Any]) -> None:
        """Report each file matching all expressions of the search map as progress, then finish.

        An empty search map is ignored and produces no answer.
        """
        params = _to_map(parameters.get(RemoteProcedureData.PARAMETERS))
        missing = _missing_parameters(params, {"searchMap"})
        if missing:
            result = dict(parameters)
            self._missing_error(result, missing)
            self._rpc_finished(call_id, CUSTOMER_DATA_SEARCH, result)
            return
        search_map = _to_map(params["searchMap"])
        if not search_map:
            return
        for file_name in self._store.search(search_map):
            progress = dict(parameters)
            progress[SEARCH_RESULT_TEXT] = file_name
            self._rpc_progress(call_id, CUSTOMER_DATA_SEARCH, progress)
        result = dict(parameters)
        result[RemoteProcedureData.RESULT_CODE] = int(ResultCode.CDS_SUCCESS)
        self._rpc_finished(call_id, CUSTOMER_DATA_SEARCH, result)