import json

import pytest

from layerform.data import (
    CURRENT_INSTANCE_VERSION,
    EnvVar,
    InstanceVersionError,
    LayerDefinition,
    LayerDefinitionFile,
    LayerInstance,
    LayerInstanceStatus,
    LayerInstanceV0,
    layer_definition_sha,
)


def test_unmarshal_supports_v0():
    v0 = LayerInstanceV0(
        layer_sha=b"layerSHA",
        layer_name="layer1",
        state_name="instance1",
        dependencies_state={"layer0": "instance1"},
        state=b"some bytes",
        status=LayerInstanceStatus.ALIVE,
    )
    raw = json.loads(json.dumps(v0.to_dict()))

    instance = LayerInstance.from_dict(raw)

    expected = LayerInstance(
        definition_sha=b"layerSHA",
        definition_name="layer1",
        instance_name="instance1",
        dependencies_instance={"layer0": "instance1"},
        state=b"some bytes",
        status=LayerInstanceStatus.ALIVE,
        version=CURRENT_INSTANCE_VERSION,
    )
    assert instance == expected


def test_current_version_round_trip():
    instance = LayerInstance(
        definition_name="layer1",
        instance_name="instance1",
        definition_sha=b"\x00\x01sha",
        dependencies_instance={"base": "main"},
        state=b"state",
        status=LayerInstanceStatus.FAULTY,
    )
    raw = json.loads(json.dumps(instance.to_dict()))
    assert raw["version"] == CURRENT_INSTANCE_VERSION
    assert LayerInstance.from_dict(raw) == instance


def test_newer_version_is_rejected():
    raw = LayerInstance(definition_name="a", instance_name="b").to_dict()
    raw["version"] = CURRENT_INSTANCE_VERSION + 1
    with pytest.raises(InstanceVersionError, match="newer version of layerform"):
        LayerInstance.from_dict(raw)


def test_unknown_status_is_kept():
    raw = LayerInstance(definition_name="a", instance_name="b").to_dict()
    raw["status"] = "mystery"
    assert LayerInstance.from_dict(raw).status == "mystery"


def test_dependency_instance_name_defaults():
    instance = LayerInstance(
        definition_name="a", instance_name="b", dependencies_instance={"eks": "prod"}
    )
    assert instance.get_dependency_instance_name("eks") == "prod"
    assert instance.get_dependency_instance_name("vpc") == "default"


def test_definition_round_trip():
    layer = LayerDefinition(
        name="kibana",
        files=[LayerDefinitionFile(path="main.tf", content=b"resource {}")],
        dependencies=["eks"],
        sha=b"abc",
    )
    raw = json.loads(json.dumps(layer.to_dict()))
    assert LayerDefinition.from_dict(raw) == layer


def test_envvar_round_trip():
    var = EnvVar(name="TF_VAR_foo", value="bar")
    assert EnvVar.from_dict(var.to_dict()) == var


def test_sha_ignores_dependency_order():
    files = [LayerDefinitionFile(path="main.tf", content=b"x")]
    a = LayerDefinition(name="a", files=files, dependencies=["x", "y"])
    b = LayerDefinition(name="b", files=files, dependencies=["y", "x"])
    assert layer_definition_sha(a) == layer_definition_sha(b)
    assert len(layer_definition_sha(a)) == 20


def test_sha_depends_on_content():
    a = LayerDefinition(name="a", files=[LayerDefinitionFile(path="main.tf", content=b"x")])
    b = LayerDefinition(name="a", files=[LayerDefinitionFile(path="main.tf", content=b"y")])
    assert layer_definition_sha(a) != layer_definition_sha(b)
    assert layer_definition_sha(a) == layer_definition_sha(a)