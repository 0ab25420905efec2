# veinlog

`veinlog` is a library for event-driven systems built from *entities*, each
holding named *components*. Systems talk to each other by passing
`CommandEvent` objects. A client request is a `TRANSACTION` event. A confirmed
change is a `NOTIFICATION` event.

The package depends only on the Python standard library (3.10 or newer).

## What is in the package

| Module | Contents |
| --- | --- |
| `veinlog.events` | Event types: `CommandEvent`, `ComponentData`, `RemoteProcedureData`, `EntityData`, `ErrorData`, and the enums they use. `server_set_event` / `client_set_event` build component updates. Also `ComponentInfo` and `DatabaseCommandInterface`, which forwards commands to connected logger databases, and the logger component names (`DATABASE_FILE`, `SESSION_NAME`, `LOGGING_ENABLED`, ...). |
| `veinlog.componentunion` | `unite_components`, which merges entity component lists. An empty list means "all components". |
| `veinlog.loggedcomponents` | `LoggedComponents` and `remove_not_stored_on_entities_storing_all_components`. |
| `veinlog.contentloaders` | `load_json_file` and the abstract `LoggerContentHandler`, with two JSON implementations: `JsonLoggerContentLoader` and `JsonLoggerContentSessionLoader`. |
| `veinlog.contentsets` | `LoggerContentSetConfig`, which combines several content handlers. |
| `veinlog.customerfiles` | `CustomerDataStore`, `CustomerDataError`, `ResultCode`, `is_valid_file_name` and `data_component_names`. |
| `veinlog.customerdata` | `CustomerDataSystem`, the customer data entity (id 200). |
| `veinlog.loggerbase` | `StorageMode` and `LoggerEntity`, the logger's identity, initial components and status notifications. |
| `veinlog.databaselogger` | `DatabaseLogger`, which opens logger databases and records component values. |

## Choosing what to log

```python
from veinlog.loggedcomponents import LoggedComponents

logged = LoggedComponents([0])          # entity 0: always log all components
logged.add_component(1050, "ACT_RMSPN1")
logged.add_all_components(1100)

logged.is_logged_component(1050, "ACT_RMSPN1")   # True
logged.is_logged_component(1100, "EntityName")   # False: never logged for "all"
logged.get_entities()                            # [1050, 0, 1100]
```

For an entity whose components are all logged, `EntityName` and
`INF_ModuleInterface` are still never logged. `clear()` removes everything
except the entities given to the constructor.

## Content sets from JSON

A content set file maps set names to lists of entities and their components:

```json
{
    "ZeraActualValues": [
        {"EntityId": 1050, "Components": ["ACT_RMSPN1", "ACT_RMSPN2"]},
        {"EntityId": 1100, "Components": []}
    ]
}
```

```python
from veinlog.contentloaders import JsonLoggerContentLoader
from veinlog.contentsets import LoggerContentSetConfig

config = LoggerContentSetConfig()
config.set_json_environment("/etc/contentsets", JsonLoggerContentLoader())
for entry in config.get_config_environment():
    entry.handler.set_session("session.json")   # reads /etc/contentsets/session.json

config.get_available_content_sets()                 # ["ZeraActualValues"]
config.component_from_content_sets(["ZeraActualValues"])
# {"1050": ["ACT_RMSPN1", "ACT_RMSPN2"], "1100": []}
```

`JsonLoggerContentSessionLoader` reads a session file that has a `modules`
array instead. If that array is not empty, the loader offers one set named
`ZeraAll`, which logs all components of every module `id`. If a file cannot
be read, or does not hold a JSON object, it is treated as empty.

## Customer data files

```python
from veinlog.customerfiles import CustomerDataStore, CustomerDataError

store = CustomerDataStore("/var/lib/customerdata/")   # created if missing
store.create("Plant-A.json")                 # writes plant-a.json, every field empty
document = store.load("plant-a.json")
document["PAR_CustomerCity"] = "Springfield"
store.save("plant-a.json", document)         # written to a temp file, then replaced

list(store.search({"PAR_CustomerCity": "spring"}))  # ["plant-a.json"]

try:
    store.create("../escape.json")
except CustomerDataError as error:
    print(error.code, error.message)         # ResultCode.CDS_EINVAL ...
```

- `create` stores the file under the lower-cased name.
- `create` and `remove` reject empty names, and names that contain any of
  `" | ` $ ! / \ < > : ?` or `..`.
- Failures raise `CustomerDataError`, which has a `ResultCode` (`CDS_EINVAL`,
  `CDS_EEXIST`, `CDS_ENOENT`, ...) and a message.
- `search` yields, in sorted order, the names of the `*.json` files in which
  every pattern matches its field. Patterns are case-insensitive regular
  expressions.

### The customer data entity

`CustomerDataSystem(path, send_event, on_error=None)` passes every outgoing
event to `send_event`. Incoming events go to its `process_event` method.

- `initialize_entity()` announces the entity, its components and its
  procedures, and an `INF_ModuleInterface` introspection document.
- Setting `FileSelected` loads that file, in lower case, and publishes its
  values. An empty name clears all components. A missing file answers with an
  `ErrorData` notification.
- Setting a data component updates the loaded document. The change is not
  written at once: call `flush_pending_write()`, or `write_customer_data()`.
  Selecting another file first writes any pending change.
- `on_error` is called when a selected file holds invalid JSON.
- Three remote procedures are available: `customerDataAdd(QString fileName)`,
  `customerDataRemove(QString fileName)` and
  `customerDataSearch(QVariantMap searchMap)`. Each answers with an
  `RPCMD_RESULT` event whose data carries `resultCode` and, on failure,
  `errorMessage`. A search first sends one `RPCMD_PROGRESS` event per match.
  A search with an empty `searchMap` sends no answer.

## The database logger

```python
from veinlog.databaselogger import DatabaseLogger
from veinlog.events import (DATABASE_FILE, LOGGING_ENABLED, SESSION_NAME,
                            TRANSACTION_NAME, client_set_event)

logger = DatabaseLogger(storage, make_database, send_event)
logger.init_once()                           # announce entity 2 "_LoggingSystem"

logger.process_event(client_set_event(logger.entity_id, DATABASE_FILE, None, "/data/log.db"))
# ... the database calls logger.on_db_ready() once it is open
logger.process_event(client_set_event(logger.entity_id, SESSION_NAME, None, "session1"))
logger.process_event(client_set_event(logger.entity_id, TRANSACTION_NAME, None, "run1"))
logger.process_event(client_set_event(logger.entity_id, LOGGING_ENABLED, None, True))
```

While logging is running, every `ComponentData` notification passed to
`process_event` is recorded if its component is selected. Components are
selected through the `LoggedComponents` or `currentContentSets` components.

You supply three things:

- **`vein_storage`**: an object with `has_entity`, `has_stored_value`,
  `get_stored_value` and `get_component_list`.
- **`factory`**: a callable that returns a database object. That object must
  provide `set_storage_mode`, `on_open`, `add_logged_value`, `add_session`,
  `run_batched_execution`, `add_transaction`, `add_start_time`,
  `has_session_name`, `read_session_component`, `delete_session` and
  `display_sessions_infos`.
- **Callbacks from the database**: the database reports back by calling
  `on_db_ready()`, `on_db_error(message)` and `update_session_list(names)`.

More behaviour:

- **Database path.** Only absolute paths are accepted. A missing parent
  directory is created. Setting an empty `DatabaseFile` closes the database.
- **Timing.** Call `on_scheduler_countdown()` periodically. With
  `ScheduledLoggingEnabled` set, it publishes the remaining time of the
  `ScheduledLoggingDuration` (in ms) and stops logging when that time is up.
  It also flushes batched writes every 5 seconds while logging.
- **Vanished files.** Call `check_database_still_valid()` to turn a vanished
  database file into a database error.
- **Storage mode.** `StorageMode.BINARY` runs the logger as entity 200000,
  `_BinaryLoggingSystem`.
- **Remote procedures.** After `init_once()`, the logger answers
  `RPC_deleteSession` and `RPC_displaySessionsInfos` calls. Both take a
  `p_session` parameter. The result event carries `ReturnValue` and
  `resultCode`.

## What the package does not do

- It contains no logger database. The database object must come from the
  factory you supply.
- It contains no event bus or network transport. Events are plain objects
  handed to your `send_event` callable.
- It runs no timers, threads or file-system watchers. The caller drives
  `on_scheduler_countdown`, `flush_pending_write` and
  `check_database_still_valid`.
- It provides no command-line program.

## Running the tests

```
pip install .[test]
pytest
```