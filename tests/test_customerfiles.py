import errno
import json
import os

import pytest

from veinlog.customerfiles import (
    COMPONENT_DESCRIPTIONS,
    CustomerDataError,
    CustomerDataStore,
    ResultCode,
    data_component_names,
    is_valid_file_name,
)


@pytest.fixture
def store(tmp_path):
    return CustomerDataStore(str(tmp_path))


def _write(store, name, document):
    with open(store.file_path(name), "w", encoding="utf-8") as handle:
        json.dump(document, handle)


@pytest.mark.parametrize(
    "name,valid",
    [
        ("customer.json", True),
        ("", False),
        ("a/b.json", False),
        ("a\\b.json", False),
        ("..json", False),
        ("x$y.json", False),
        ("what?.json", False),
        ("c:.json", False),
    ],
)
def test_is_valid_file_name(name, valid):
    assert is_valid_file_name(name) is valid


def test_data_component_names_exclude_entity_and_selection():
    names = data_component_names()
    assert "EntityName" not in names
    assert "FileSelected" not in names
    assert set(names) == set(COMPONENT_DESCRIPTIONS) - {"EntityName", "FileSelected"}


def test_raised_codes_follow_errno(store):
    with pytest.raises(CustomerDataError) as invalid:
        store.create("a|b.json")
    assert invalid.value.code == -errno.EINVAL

    store.create("dup.json")
    with pytest.raises(CustomerDataError) as existing:
        store.create("dup.json")
    assert existing.value.code == -errno.EEXIST

    with pytest.raises(CustomerDataError) as missing:
        store.remove("absent.json")
    assert missing.value.code == -errno.ENOENT


def test_init_creates_missing_directory(tmp_path):
    target = tmp_path / "customerdata"
    CustomerDataStore(str(target))
    assert target.is_dir()


def test_init_rejects_empty_path():
    with pytest.raises(ValueError):
        CustomerDataStore("")


def test_create_writes_lowercase_file_with_empty_fields(store):
    path = store.create("Customer.JSON")
    assert os.path.basename(path) == "customer.json"
    document = store.load("customer.json")
    assert set(document) == set(data_component_names())
    assert all(value == "" for value in document.values())


def test_create_existing_raises_eexist(store):
    store.create("a.json")
    with pytest.raises(CustomerDataError) as info:
        store.create("A.json")
    assert info.value.code is ResultCode.CDS_EEXIST


def test_create_invalid_name_raises_einval(store):
    with pytest.raises(CustomerDataError) as info:
        store.create("../evil.json")
    assert info.value.code is ResultCode.CDS_EINVAL
    assert info.value.message == "Invalid data for parameter: [fileName]"


def test_remove_deletes_file(store):
    store.create("gone.json")
    store.remove("gone.json")
    assert store.exists("gone.json") is False


def test_remove_missing_raises_enoent(store):
    with pytest.raises(CustomerDataError) as info:
        store.remove("missing.json")
    assert info.value.code is ResultCode.CDS_ENOENT


def test_remove_invalid_name_raises_einval(store):
    with pytest.raises(CustomerDataError) as info:
        store.remove("a|b.json")
    assert info.value.code is ResultCode.CDS_EINVAL


def test_save_load_round_trip(store):
    document = {"PAR_CustomerFirstName": "Jürgen", "PAR_CustomerCity": "Town"}
    store.save("data.json", document)
    assert store.load("data.json") == document
    assert os.listdir(store.path) == ["data.json"]


def test_load_invalid_json_raises(store):
    with open(store.file_path("bad.json"), "w", encoding="utf-8") as handle:
        handle.write("{not json")
    with pytest.raises(CustomerDataError) as info:
        store.load("bad.json")
    assert info.value.code is ResultCode.CDS_EINVAL


def test_load_non_object_raises(store):
    _write(store, "list.json", [1, 2])
    with pytest.raises(CustomerDataError):
        store.load("list.json")


def test_load_missing_raises_enoent(store):
    with pytest.raises(CustomerDataError) as info:
        store.load("nothing.json")
    assert info.value.code is ResultCode.CDS_ENOENT


def test_search_is_case_insensitive_and_conjunctive(store):
    _write(store, "a.json", {"PAR_CustomerFirstName": "Anna", "PAR_CustomerCity": "Berlin"})
    _write(store, "b.json", {"PAR_CustomerFirstName": "anton", "PAR_CustomerCity": "Hamburg"})
    _write(store, "c.json", {"PAR_CustomerFirstName": "Bert", "PAR_CustomerCity": "Berlin"})
    assert list(store.search({"PAR_CustomerFirstName": "^an"})) == ["a.json", "b.json"]
    assert list(store.search({"PAR_CustomerFirstName": "an", "PAR_CustomerCity": "berlin"})) == ["a.json"]


def test_search_skips_invalid_and_non_json_files(store):
    _write(store, "good.json", {"PAR_MeterOwner": "owner"})
    _write(store, "other.txt", {"PAR_MeterOwner": "owner"})
    with open(store.file_path("broken.json"), "w", encoding="utf-8") as handle:
        handle.write("[")
    assert list(store.search({"PAR_MeterOwner": "own"})) == ["good.json"]


def test_search_invalid_regex_matches_nothing(store):
    _write(store, "good.json", {"PAR_MeterOwner": "owner"})
    assert list(store.search({"PAR_MeterOwner": "("})) == []


def test_search_with_empty_map_lists_all_valid_files(store):
    store.create("one.json")
    store.create("two.json")
    assert sorted(store.search({})) == ["one.json", "two.json"]