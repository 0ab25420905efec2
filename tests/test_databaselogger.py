import os
import time

import pytest

from veinlog.contentloaders import LoggerContentHandler
from veinlog.contentsets import LoggerContentSetConfig
from veinlog.databaselogger import RPC_RETURN_VALUE, DatabaseLogger
from veinlog.events import (
    CommandEvent,
    ComponentData,
    ErrorData,
    EventSubtype,
    RemoteProcedureData,
    RpcCommand,
    client_set_event,
)
from veinlog.loggerbase import StorageMode


class FakeDb:
    def __init__(self):
        self.opened = []
        self.logged = []
        self.sessions = {}
        self.flushes = 0
        self.transactions = []
        self.deleted = []
        self.storage_mode = None
        self.session_components = {}

    def set_storage_mode(self, mode):
        self.storage_mode = mode

    def on_open(self, path):
        self.opened.append(path)
        with open(path, "a", encoding="utf-8"):
            pass

    def add_logged_value(self, session, transaction_ids, component):
        self.logged.append((session, transaction_ids, component))

    def add_session(self, name, static_data):
        self.sessions[name] = static_data

    def run_batched_execution(self):
        self.flushes += 1

    def add_transaction(self, transaction, session, content_sets, gui_context):
        self.transactions.append((transaction, session, content_sets, gui_context))
        return 7

    def add_start_time(self, transaction_id, when):
        pass

    def has_session_name(self, name):
        return name in self.sessions

    def read_session_component(self, session, entity, component):
        return self.session_components.get((session, entity, component))

    def delete_session(self, session):
        self.deleted.append(session)
        return True

    def display_sessions_infos(self, session):
        return {session: {"Transactions": ["t1"]}}


class FakeStorage:
    def __init__(self, values=None):
        self.values = dict(values or {})

    def has_entity(self, entity_id):
        return any(eid == entity_id for eid, _ in self.values)

    def has_stored_value(self, entity_id, component):
        return (entity_id, component) in self.values

    def get_stored_value(self, entity_id, component):
        return self.values.get((entity_id, component))

    def get_component_list(self, entity_id):
        return [c for eid, c in self.values if eid == entity_id]


class FakeHandler(LoggerContentHandler):
    def __init__(self):
        self.session = None

    def set_config_file_dir(self, directory):
        pass

    def set_session(self, session):
        self.session = session

    def get_available_content_sets(self):
        return ["SetA"] if self.session else []

    def get_entity_components(self, content_set_name):
        return {10: ["A"]} if content_set_name == "SetA" else {}


def make_logger(values=None, config=None, mode=StorageMode.TEXT):
    sent = []
    dbs = []

    def factory():
        db = FakeDb()
        dbs.append(db)
        return db

    logger = DatabaseLogger(FakeStorage(values), factory, sent.append, config, (), mode)
    return logger, sent, dbs


def component_events(sent, name):
    return [e for e in sent if isinstance(e.data, ComponentData) and e.data.component_name == name]


def transact(logger, name, value, old=None):
    event = client_set_event(logger.entity_id, name, old, value)
    logger.process_event(event)
    return event


def open_ready(logger, tmp_path):
    path = str(tmp_path / "log.db")
    transact(logger, "DatabaseFile", path)
    logger.on_db_ready()
    return path


def test_storage_mode_identity():
    text, _, _ = make_logger()
    binary, _, _ = make_logger(mode=StorageMode.BINARY)
    assert (text.entity_id, text.entity_name) == (2, "_LoggingSystem")
    assert (binary.entity_id, binary.entity_name) == (200000, "_BinaryLoggingSystem")


def test_relative_path_rejected():
    logger, _, dbs = make_logger()
    transact(logger, "DatabaseFile", "relative.db")
    assert dbs == []
    assert logger.status_text == "Database error"
    assert "Relative paths are not accepted" in logger.last_error


def test_open_and_ready(tmp_path):
    logger, sent, dbs = make_logger()
    path = open_ready(logger, tmp_path)
    assert dbs[0].opened == [path]
    assert dbs[0].storage_mode is StorageMode.TEXT
    assert logger.db_ready
    assert component_events(sent, "DatabaseReady")[-1].data.new_value is True
    assert component_events(sent, "DatabaseFile")[-1].data.new_value == path
    assert logger.status_text == "Database loaded"


def test_logging_requires_conditions(tmp_path):
    logger, _, dbs = make_logger()
    open_ready(logger, tmp_path)
    transact(logger, "LoggingEnabled", True)
    assert not logger.logging_active
    assert dbs[0].transactions == []


def test_full_logging_flow(tmp_path):
    values = {(10, "A"): 1.5, (10, "EntityName"): "Meter", (200, "FileSelected"): "cust.json", (200, "PAR_X"): "x"}
    logger, sent, dbs = make_logger(values)
    open_ready(logger, tmp_path)
    db = dbs[0]
    transact(logger, "sessionName", "s1")
    assert "s1" in db.sessions
    assert {info.component_name for info in db.sessions["s1"]} == {"FileSelected", "PAR_X"}
    assert component_events(sent, "CustomerData")[-1].data.new_value == "cust.json"

    transact(logger, "transactionName", "t1")
    transact(logger, "LoggedComponents", {"10": ["A"]})
    transact(logger, "LoggingEnabled", True)
    assert logger.logging_active
    assert db.transactions == [("t1", "s1", [], "")]
    assert db.logged[0][0] == "s1"
    assert db.logged[0][1] == [7]
    assert db.logged[0][2].value == 1.5
    assert db.logged[0][2].entity_name == "Meter"

    logger.process_event(CommandEvent(EventSubtype.NOTIFICATION, ComponentData(entity_id=10, component_name="A", new_value=2.0)))
    logger.process_event(CommandEvent(EventSubtype.NOTIFICATION, ComponentData(entity_id=10, component_name="B", new_value=3.0)))
    assert [entry[2].value for entry in db.logged] == [1.5, 2.0]

    transact(logger, "LoggingEnabled", False)
    assert not logger.logging_active
    assert db.flushes >= 1


def test_existing_session_reads_customer_data(tmp_path):
    logger, sent, dbs = make_logger()
    open_ready(logger, tmp_path)
    dbs[0].sessions["old"] = []
    dbs[0].session_components[("old", "CustomerData", "FileSelected")] = "a.json"
    transact(logger, "sessionName", "old")
    assert component_events(sent, "CustomerData")[-1].data.new_value == "a.json"


def test_invalid_duration_reports_error():
    logger, sent, _ = make_logger()
    event = transact(logger, "ScheduledLoggingDuration", -5)
    errors = [e for e in sent if isinstance(e.data, ErrorData)]
    assert errors[-1].data.error_description == "Invalid logging duration: -5"
    assert event.accepted


def test_scheduled_logging_stops(tmp_path):
    logger, _, _ = make_logger()
    open_ready(logger, tmp_path)
    transact(logger, "ScheduledLoggingEnabled", True)
    transact(logger, "ScheduledLoggingDuration", 1)
    transact(logger, "sessionName", "s1")
    transact(logger, "transactionName", "t1")
    transact(logger, "LoggingEnabled", True)
    assert logger.logging_active
    time.sleep(0.02)
    logger.on_scheduler_countdown()
    assert not logger.logging_active


def test_close_database_via_empty_file(tmp_path):
    logger, sent, _ = make_logger()
    open_ready(logger, tmp_path)
    transact(logger, "DatabaseFile", "")
    assert not logger.db_ready
    assert logger.database is None
    assert logger.database_file_path == ""
    assert logger.status_text == "No database selected"
    assert component_events(sent, "ExistingSessions")[-1].data.new_value == []


def test_vanished_database_file(tmp_path):
    logger, _, _ = make_logger()
    path = open_ready(logger, tmp_path)
    os.remove(path)
    logger.check_database_still_valid()
    assert logger.database_file_path == ""
    assert logger.status_text == "Database error"


def rpc_event(logger, name, params):
    data = RemoteProcedureData(
        entity_id=logger.entity_id,
        command=RpcCommand.RPCMD_CALL,
        procedure_name=name,
        invokation_data={RemoteProcedureData.CALL_ID: "c1", RemoteProcedureData.PARAMETERS: params},
    )
    return CommandEvent(EventSubtype.TRANSACTION, data, peer_id="peer")


def test_rpc_delete_session(tmp_path):
    logger, sent, dbs = make_logger()
    logger.init_once()
    open_ready(logger, tmp_path)
    transact(logger, "sessionName", "s1")
    event = rpc_event(logger, "RPC_deleteSession", {"p_session": "s1"})
    logger.process_event(event)
    assert event.accepted
    assert dbs[0].deleted == ["s1"]
    assert logger.session_name == ""
    results = [e for e in sent if isinstance(e.data, RemoteProcedureData) and e.data.command == RpcCommand.RPCMD_RESULT]
    assert results[-1].data.invokation_data[RemoteProcedureData.RESULT_CODE] == 0
    assert results[-1].data.invokation_data[RPC_RETURN_VALUE] is True
    assert results[-1].peer_id == "peer"


def test_unknown_rpc_gives_error():
    logger, sent, _ = make_logger()
    logger.init_once()
    logger.process_event(rpc_event(logger, "RPC_nothing", {}))
    errors = [e for e in sent if isinstance(e.data, ErrorData)]
    assert errors[-1].data.error_description == "No remote procedure with name: RPC_nothing"


def test_display_sessions_infos(tmp_path):
    logger, _, _ = make_logger()
    open_ready(logger, tmp_path)
    assert logger.rpc_display_sessions_infos({"p_session": "s1"}) == {"Transactions": ["t1"]}


def test_rpc_without_database_raises():
    logger, _, _ = make_logger()
    with pytest.raises(RuntimeError):
        logger.rpc_delete_session({"p_session": "s1"})


def test_content_sets():
    config = LoggerContentSetConfig()
    config.set_json_environment("/cfg", FakeHandler())
    logger, sent, _ = make_logger(config=config)
    logger.on_modman_session_change("session.json")
    assert component_events(sent, "availableContentSets")[-1].data.new_value == ["SetA"]
    transact(logger, "currentContentSets", ["SetA"])
    assert logger.content_sets == ["SetA"]
    logged = component_events(sent, "LoggedComponents")[-1]
    assert logged.subtype == EventSubtype.TRANSACTION
    assert logged.data.new_value == {"10": ["A"]}


def test_logged_components_wrong_type_ignored():
    logger, _, _ = make_logger()
    transact(logger, "LoggedComponents", {"5": []})
    assert logger.logged_components.are_all_components_stored(5)
    transact(logger, "LoggedComponents", "bad", old={"5": []})
    assert logger.logged_components.are_all_components_stored(5)