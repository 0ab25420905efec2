"""Customer data files: naming rules, creation, removal, loading, saving and searching."""

from __future__ import annotations

import enum
import errno
import json
import logging
import os
import re
import tempfile
from collections.abc import Iterator, Mapping
from typing import Any

_log = logging.getLogger(__name__)

ENTITY_ID = 200
ENTITY_NAME = "CustomerData"

ENTITY_NAME_COMPONENT = "EntityName"
INTROSPECTION_COMPONENT = "INF_ModuleInterface"
FILE_SELECTED_COMPONENT = "FileSelected"

CUSTOMER_DATA_ADD = "customerDataAdd(QString fileName)"
CUSTOMER_DATA_REMOVE = "customerDataRemove(QString fileName)"
CUSTOMER_DATA_SEARCH = "customerDataSearch(QVariantMap searchMap)"
SEARCH_RESULT_TEXT = "CustomerDataSystem::searchResult"

_COMMENT = "Free form text comment"
_FIRST_NAME = "First name"
_LAST_NAME = "Last name"
_STREET = "Street of the address"
_POSTAL_CODE = "Postal/Zip code of the address"
_CITY = "City of the address"
_COUNTRY = "Country of the address"

COMPONENT_DESCRIPTIONS: dict[str, str] = {
    ENTITY_NAME_COMPONENT: "Entity name",
    FILE_SELECTED_COMPONENT: "Currently selected customer data file",
    # base
    "PAR_DatasetIdentifier": "Unique identifier",
    "PAR_DatasetComment": _COMMENT,
    # customer
    "PAR_CustomerFirstName": _FIRST_NAME,
    "PAR_CustomerLastName": _LAST_NAME,
    "PAR_CustomerStreet": _STREET,
    "PAR_CustomerPostalCode": _POSTAL_CODE,
    "PAR_CustomerCity": _CITY,
    "PAR_CustomerCountry": _COUNTRY,
    "PAR_CustomerNumber": "Customer number",
    "PAR_CustomerComment": _COMMENT,
    # location
    "PAR_LocationFirstName": _FIRST_NAME,
    "PAR_LocationLastName": _LAST_NAME,
    "PAR_LocationStreet": _STREET,
    "PAR_LocationPostalCode": _POSTAL_CODE,
    "PAR_LocationCity": _CITY,
    "PAR_LocationCountry": _COUNTRY,
    "PAR_LocationNumber": "Location number",
    "PAR_LocationComment": _COMMENT,
    # power grid
    "PAR_PowerGridOperator": "Power grid operator",
    "PAR_PowerGridSupplier": "Power grid supplier",
    "PAR_PowerGridComment": _COMMENT,
    # meter
    "PAR_MeterManufacturer": "Meter manufacturer",
    "PAR_MeterFactoryNumber": "Meter factory number",
    "PAR_MeterOwner": "Meter owner",
    "PAR_MeterComment": _COMMENT,
}

PROCEDURE_DESCRIPTIONS: dict[str, str] = {
    CUSTOMER_DATA_ADD: "fileName: The file name to store the new file, does not accept names of existing files",
    CUSTOMER_DATA_REMOVE: "fileName: the name of the file to be removed",
    CUSTOMER_DATA_SEARCH: "searchMap: regular expression values in the map are tested against all files",
}

WRITE_PROTECTED_COMPONENTS = frozenset({ENTITY_NAME_COMPONENT, INTROSPECTION_COMPONENT})

_INVALID_NAME_PARTS = ('"', "|", "`", "$", "!", "/", "\\", "<", ">", ":", "?", "../", "..")


class ResultCode(enum.IntEnum):
    """Result codes reported by the customer data procedures."""

    CDS_CANCELED = -64
    CDS_EINVAL = -errno.EINVAL
    CDS_EEXIST = -errno.EEXIST
    CDS_ENOENT = -errno.ENOENT
    CDS_SUCCESS = 0
    CDS_QFILEDEVICE_FILEERROR_BEGIN = 1
    CDS_WRITE_ERROR = 2
    CDS_OPEN_ERROR = 5
    CDS_REMOVE_ERROR = 9


class CustomerDataError(Exception):
    """A customer data operation failed; carries a result code and a message."""

    def __init__(self, code: ResultCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def is_valid_file_name(file_name: str) -> bool:
    """True when the name is non-empty and holds no path or shell special characters."""
    return bool(file_name) and not any(part in file_name for part in _INVALID_NAME_PARTS)


def data_component_names() -> list[str]:
    """Names of the components stored in a customer data file."""
    return [
        name
        for name in COMPONENT_DESCRIPTIONS
        if name not in (ENTITY_NAME_COMPONENT, FILE_SELECTED_COMPONENT)
    ]


def _to_json(document: Mapping[str, Any]) -> str:
    return json.dumps(document, indent=4, sort_keys=True, ensure_ascii=False) + "\n"


def _json_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _invalid_file_name() -> CustomerDataError:
    return CustomerDataError(ResultCode.CDS_EINVAL, "Invalid data for parameter: [fileName]")


class CustomerDataStore:
    """The directory holding the customer data JSON files."""

    def __init__(self, path: str) -> None:
        if not path:
            raise ValueError("customer data path must not be empty")
        self.path = path
        if not os.path.exists(path):
            _log.warning("Customer data directory does not exist: %s", path)
            try:
                os.mkdir(path)
            except OSError:
                _log.warning("Could not create customerdata directory: %s", path)

    def file_path(self, file_name: str) -> str:
        return os.path.join(self.path, file_name)

    def exists(self, file_name: str) -> bool:
        return bool(file_name) and os.path.exists(self.file_path(file_name))

    def create(self, file_name: str) -> str:
        """Create an empty data file under the lower-cased name and return its path."""
        if not is_valid_file_name(file_name):
            raise _invalid_file_name()
        target = self.file_path(file_name.lower())
        if os.path.exists(target):
            raise CustomerDataError(ResultCode.CDS_EEXIST, f"Customer data file already exists: {target}")
        document = {name: "" for name in data_component_names()}
        try:
            with open(target, "x", encoding="utf-8") as handle:
                handle.write(_to_json(document))
        except FileExistsError:
            raise CustomerDataError(
                ResultCode.CDS_EEXIST, f"Customer data file already exists: {target}"
            ) from None
        except OSError as error:
            raise CustomerDataError(
                ResultCode.CDS_OPEN_ERROR,
                f"Could not write customer data file: {target} error: {error.strerror or error}",
            ) from error
        return target

    def remove(self, file_name: str) -> None:
        """Delete a data file."""
        if not is_valid_file_name(file_name):
            raise _invalid_file_name()
        target = self.file_path(file_name)
        if not os.path.exists(target):
            raise CustomerDataError(ResultCode.CDS_ENOENT, f"Customer data file does not exist: {target}")
        try:
            os.remove(target)
        except OSError as error:
            raise CustomerDataError(
                ResultCode.CDS_REMOVE_ERROR,
                f"Could not delete customer data file: {target} error: {error.strerror or error}",
            ) from error

    def load(self, file_name: str) -> dict[str, Any]:
        """Read a data file and return its JSON object."""
        target = self.file_path(file_name)
        try:
            with open(target, encoding="utf-8") as handle:
                text = handle.read()
        except FileNotFoundError:
            raise CustomerDataError(
                ResultCode.CDS_ENOENT, f"Customer data file does not exist: {file_name}"
            ) from None
        except (OSError, UnicodeDecodeError) as error:
            raise CustomerDataError(
                ResultCode.CDS_OPEN_ERROR, f"Could not read customer data file: {file_name} error: {error}"
            ) from error
        try:
            document = json.loads(text)
        except ValueError as error:
            raise CustomerDataError(
                ResultCode.CDS_EINVAL, f"Invalid JSON data in customer data file: {file_name} error: {error}"
            ) from error
        if not isinstance(document, dict):
            raise CustomerDataError(
                ResultCode.CDS_EINVAL,
                f"Invalid JSON data in customer data file: {file_name} error: not a JSON object",
            )
        return document

    def save(self, file_name: str, document: Mapping[str, Any]) -> None:
        """Write a document atomically, replacing the file only once fully written."""
        target = self.file_path(file_name)
        directory = os.path.dirname(target) or "."
        temp_path = None
        try:
            fd, temp_path = tempfile.mkstemp(dir=directory, prefix=f".{os.path.basename(target)}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(_to_json(document))
            os.replace(temp_path, target)
            temp_path = None
        except OSError as error:
            raise CustomerDataError(
                ResultCode.CDS_WRITE_ERROR, f"Error writing customerdata json file: {file_name}"
            ) from error
        finally:
            if temp_path is not None and os.path.exists(temp_path):
                os.remove(temp_path)

    def _matches(self, file_name: str, patterns: list[tuple[str, re.Pattern[str] | None]]) -> bool:
        try:
            document = self.load(file_name)
        except CustomerDataError:
            return False
        for key, pattern in patterns:
            if pattern is None or not pattern.search(_json_text(document.get(key))):
                return False
        return True

    def search(self, search_map: Mapping[str, Any]) -> Iterator[str]:
        """Yield the names of JSON files whose values match every regular expression."""
        patterns: list[tuple[str, re.Pattern[str] | None]] = []
        for key, expression in search_map.items():
            try:
                patterns.append((key, re.compile(str(expression), re.IGNORECASE)))
            except re.error:
                patterns.append((key, None))
        try:
            names = sorted(os.listdir(self.path))
        except OSError:
            return
        for name in names:
            if not name.lower().endswith(".json") or not os.path.isfile(self.file_path(name)):
                continue
            if self._matches(name, patterns):
                yield name