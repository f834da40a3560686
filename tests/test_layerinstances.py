import json

import pytest
import responses

from layerform.cloud import CloudError, HTTPClient
from layerform.data import (
    CURRENT_INSTANCE_VERSION,
    LayerInstance,
    LayerInstanceStatus,
    LayerInstanceV0,
)
from layerform.layerinstances import (
    CURRENT_FILE_LIKE_MODEL_VERSION,
    CloudInstancesBackend,
    FileLikeInstancesBackend,
    FileLikeModel,
    InstanceNotFoundError,
    InstancesFileVersionError,
)
from layerform.storage import FileLike, FileStorage, StorageError

BASE_URL = "https://cloud.example.com"


class MemoryStorage(FileLike):
    def __init__(self, document=None, fail=False):
        self.document = document
        self.saved = []
        self.fail = fail

    def path(self):
        return "memory"

    def load(self):
        return self.document

    def save(self, value):
        self.saved.append(value)
        if self.fail:
            raise StorageError("rip")


def backend_with(instances, storage=None):
    storage = storage or MemoryStorage()
    backend = FileLikeInstancesBackend(storage)
    backend.model.instances = list(instances)
    return backend, storage


def test_model_supports_v0():
    v0 = LayerInstanceV0(
        layer_sha=b"layerSHA",
        layer_name="layer1",
        state_name="instance1",
        dependencies_state={"layer2": "instance2"},
        state=b"some bytes",
        status=LayerInstanceStatus.ALIVE,
    )
    raw = json.loads(json.dumps({"version": 0, "states": [v0.to_dict()]}))

    model = FileLikeModel.from_dict(raw)

    expected = FileLikeModel(
        version=CURRENT_FILE_LIKE_MODEL_VERSION,
        instances=[
            LayerInstance(
                definition_sha=b"layerSHA",
                definition_name="layer1",
                instance_name="instance1",
                dependencies_instance={"layer2": "instance2"},
                state=b"some bytes",
                status=LayerInstanceStatus.ALIVE,
                version=CURRENT_INSTANCE_VERSION,
            )
        ],
    )
    assert model == expected


def test_model_round_trip():
    model = FileLikeModel(
        instances=[
            LayerInstance(
                definition_name="layer1",
                instance_name="instance1",
                state=b"data1",
                status=LayerInstanceStatus.FAULTY,
            )
        ]
    )
    assert FileLikeModel.from_dict(json.loads(json.dumps(model.to_dict()))) == model


def test_model_rejects_newer_version():
    with pytest.raises(InstancesFileVersionError):
        FileLikeModel.from_dict({"version": CURRENT_FILE_LIKE_MODEL_VERSION + 1})


def test_model_rejects_non_integer_version():
    with pytest.raises(InstancesFileVersionError):
        FileLikeModel.from_dict({"version": "one"})


def test_get_instance_found():
    instance = LayerInstance(
        definition_name="layer1",
        instance_name="instance1",
        dependencies_instance={"base": "testBaseStae"},
        state=b"instance1",
    )
    backend, _ = backend_with([instance])
    assert backend.get_instance("layer1", "instance1") is instance


def test_get_instance_not_found():
    backend, _ = backend_with([LayerInstance(definition_name="layer1", instance_name="instance1")])
    with pytest.raises(InstanceNotFoundError):
        backend.get_instance("layer2", "instance2")


def test_save_instance_adds_and_saves():
    instance = LayerInstance(definition_name="layer1", instance_name="instance1", state=b"data1")
    backend, storage = backend_with([])

    backend.save_instance(instance)

    assert backend.model.instances == [instance]
    assert storage.saved == [
        FileLikeModel(version=CURRENT_FILE_LIKE_MODEL_VERSION, instances=[instance]).to_dict()
    ]


def test_save_instance_replaces_existing():
    old = LayerInstance(definition_name="layer1", instance_name="instance1", state=b"old")
    other = LayerInstance(definition_name="layer2", instance_name="instance1", state=b"other")
    new = LayerInstance(definition_name="layer1", instance_name="instance1", state=b"new")
    backend, _ = backend_with([old, other])

    backend.save_instance(new)

    assert backend.model.instances == [other, new]


def test_save_instance_fails_when_storage_fails():
    instance = LayerInstance(definition_name="layer1", instance_name="instance1", state=b"data1")
    backend, _ = backend_with([], MemoryStorage(fail=True))

    with pytest.raises(StorageError):
        backend.save_instance(instance)

    assert len(backend.model.instances) == 1
    assert backend.model.instances[0].definition_name == "layer1"
    assert backend.model.instances[0].instance_name == "instance1"
    assert backend.model.instances[0].state == b"data1"


def _two_instances():
    instance1 = LayerInstance(definition_name="layer1", instance_name="instance1", state=b"data1")
    instance2 = LayerInstance(definition_name="layer2", instance_name="instance2", state=b"data2")
    return instance1, instance2


def test_delete_existing_instance():
    instance1, instance2 = _two_instances()
    backend, storage = backend_with([instance1, instance2])

    backend.delete_instance("layer1", "instance1")

    assert backend.model.instances == [instance2]
    assert storage.saved == [
        FileLikeModel(version=CURRENT_FILE_LIKE_MODEL_VERSION, instances=[instance2]).to_dict()
    ]


def test_delete_non_existent_instance():
    instance1, instance2 = _two_instances()
    backend, storage = backend_with([instance1, instance2])

    backend.delete_instance("nonExistentLayer", "nonExistentInstance")

    assert len(backend.model.instances) == 2
    assert storage.saved == [backend.model.to_dict()]


def test_list_instances_by_layer():
    instance1 = LayerInstance(definition_name="layer1", instance_name="instance1", state=b"data1")
    instance2 = LayerInstance(definition_name="layer2", instance_name="instance2", state=b"data2")
    instance3 = LayerInstance(definition_name="layer1", instance_name="instance3", state=b"data3")
    backend, _ = backend_with([instance1, instance2, instance3])

    found = backend.list_instances_by_layer("layer1")
    assert len(found) == 2
    assert instance1 in found
    assert instance3 in found

    assert backend.list_instances_by_layer("nonExistentLayer") == []


def test_list_instances_returns_all():
    instance1, instance2 = _two_instances()
    backend, _ = backend_with([instance1, instance2])
    assert backend.list_instances() == [instance1, instance2]


def test_missing_document_gives_empty_model():
    backend = FileLikeInstancesBackend(MemoryStorage(None))
    assert backend.model == FileLikeModel(version=CURRENT_FILE_LIKE_MODEL_VERSION, instances=[])


def test_bad_document_raises_storage_error():
    with pytest.raises(StorageError):
        FileLikeInstancesBackend(MemoryStorage(["not", "an", "object"]))


def test_persists_through_file_storage(tmp_path):
    fpath = str(tmp_path / "state" / "layerform.lfstate")
    instance = LayerInstance(
        definition_name="layer1",
        instance_name="instance1",
        state=b"data1",
        status=LayerInstanceStatus.ALIVE,
    )
    FileLikeInstancesBackend(FileStorage(fpath)).save_instance(instance)

    reloaded = FileLikeInstancesBackend(FileStorage(fpath))
    assert reloaded.list_instances() == [instance]


def _client():
    return HTTPClient(BASE_URL, "token")


def test_cloud_get_instance():
    instance = LayerInstance(definition_name="layer1", instance_name="instance1", state=b"x")
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            f"{BASE_URL}/v1/definitions/layer1/instances/instance1",
            json=instance.to_dict(),
        )
        result = CloudInstancesBackend(_client()).get_instance("layer1", "instance1")
        assert rsps.calls[0].request.headers["Authorization"] == "Bearer token"
    assert result == instance


def test_cloud_get_instance_not_found():
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            f"{BASE_URL}/v1/definitions/layer1/instances/missing",
            status=404,
        )
        with pytest.raises(InstanceNotFoundError):
            CloudInstancesBackend(_client()).get_instance("layer1", "missing")


def test_cloud_get_instance_server_error():
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            f"{BASE_URL}/v1/definitions/layer1/instances/instance1",
            status=500,
        )
        with pytest.raises(CloudError, match="status code 500"):
            CloudInstancesBackend(_client()).get_instance("layer1", "instance1")


def test_cloud_list_instances():
    instance1, instance2 = _two_instances()
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            f"{BASE_URL}/v1/instances",
            json=[instance1.to_dict(), instance2.to_dict()],
        )
        result = CloudInstancesBackend(_client()).list_instances()
    assert result == [instance1, instance2]


def test_cloud_list_instances_by_layer():
    instance1, _ = _two_instances()
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            f"{BASE_URL}/v1/definitions/layer1/instances",
            json=[instance1.to_dict()],
        )
        result = CloudInstancesBackend(_client()).list_instances_by_layer("layer1")
    assert result == [instance1]


def test_cloud_save_instance_posts_json():
    instance1, _ = _two_instances()
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, f"{BASE_URL}/v1/instances", status=200)
        CloudInstancesBackend(_client()).save_instance(instance1)
        assert json.loads(rsps.calls[0].request.body) == instance1.to_dict()


def test_cloud_delete_instance_failure():
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.DELETE,
            f"{BASE_URL}/v1/definitions/layer1/instances/instance1",
            status=500,
        )
        with pytest.raises(CloudError):
            CloudInstancesBackend(_client()).delete_instance("layer1", "instance1")