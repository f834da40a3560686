import pytest

from layerform.storage import FileStorage, StorageError


def test_path_is_returned(tmp_path):
    fpath = str(tmp_path / "layerform.env")
    assert FileStorage(fpath).path() == fpath


def test_missing_file_loads_as_none(tmp_path):
    assert FileStorage(str(tmp_path / "missing.json")).load() is None


def test_round_trip_creates_directories(tmp_path):
    fpath = tmp_path / "nested" / "dir" / "layerform.lfstate"
    storage = FileStorage(str(fpath))
    value = {"version": 1, "instances": [{"instanceName": "default"}]}

    storage.save(value)

    assert fpath.exists()
    assert FileStorage(str(fpath)).load() == value


def test_save_overwrites(tmp_path):
    storage = FileStorage(str(tmp_path / "vars.json"))
    storage.save([{"name": "A", "value": "1"}])
    storage.save([])
    assert storage.load() == []


def test_invalid_json_raises(tmp_path):
    fpath = tmp_path / "broken.json"
    fpath.write_text("{nope")
    with pytest.raises(StorageError, match="fail to parse layers out of"):
        FileStorage(str(fpath)).load()


def test_unserialisable_value_raises(tmp_path):
    with pytest.raises(StorageError):
        FileStorage(str(tmp_path / "x.json")).save({"value": object()})