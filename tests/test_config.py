import os

import pytest
import responses

from layerform.config import (
    Config,
    ConfigError,
    default_paths,
    init_config,
    load,
)
from layerform.contexts import ConfigContext
from layerform.data import EnvVar
from layerform.layerdefinitions import CloudDefinitionsBackend
from layerform.layerinstances import FileLikeInstancesBackend


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ("LF_CLOUD_URL", "LF_CLOUD_EMAIL", "LF_CLOUD_PASSWORD"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("USERPROFILE", str(tmp_path / "home"))


def test_load_errors_when_file_missing(tmp_path):
    with pytest.raises(ConfigError) as info:
        load(str(tmp_path / "this-file-do-not-exist"))
    assert info.value.missing is True


def test_load_errors_when_fail_to_decode(tmp_path):
    fpath = tmp_path / "config"
    fpath.write_text('"not" "valid" "yaml"')
    with pytest.raises(ConfigError) as info:
        load(str(fpath))
    assert info.value.missing is False


def test_load_errors_when_current_context_missing(tmp_path):
    fpath = tmp_path / "config"
    fpath.write_text("currentContext: context")
    with pytest.raises(ConfigError, match="context context not found"):
        load(str(fpath))


def test_load_successfully(tmp_path):
    fpath = tmp_path / "config"
    fpath.write_text(
        "currentContext: context\ncontexts:\n  context:\n    type: local\n    dir: test-dir"
    )
    cfg = load(str(fpath))
    assert cfg.current_context == "context"
    assert cfg.contexts == {"context": ConfigContext(type="local", dir="test-dir")}
    assert cfg.path == str(fpath)


def test_save_and_load_round_trip(tmp_path):
    ctx = ConfigContext(type="s3", bucket="bucket", region="us-east-1")
    path = str(tmp_path / "nested" / "config")
    cfg = init_config("example", ctx, path)
    cfg.save()
    again = load(path)
    assert again == cfg


def test_init_config_uses_first_default_path():
    cfg = init_config("example", ConfigContext(type="local", dir="d"))
    assert cfg.path == default_paths()[0]
    assert cfg.current_context == "example"


def test_default_paths_live_in_layerform_dir(tmp_path):
    paths = default_paths()
    assert len(paths) == 7
    assert all(os.path.dirname(p) == str(tmp_path / "home" / ".layerform") for p in paths)
    assert os.path.basename(paths[0]) == "config"


def test_load_searches_default_paths(tmp_path):
    cfg = init_config("ctx", ConfigContext(type="local", dir="d"), default_paths()[-1])
    cfg.save()
    assert load() == cfg


def test_get_current_prefers_environment(monkeypatch):
    password = "password"
    cfg = Config("local", {"local": ConfigContext(type="local", dir="d")}, "/tmp/config")
    assert cfg.get_current().type == "local"
    monkeypatch.setenv("LF_CLOUD_URL", " https://cloud.example.com ")
    monkeypatch.setenv("LF_CLOUD_EMAIL", "user@example.com")
    monkeypatch.setenv("LF_CLOUD_PASSWORD", password)
    assert cfg.get_current() == ConfigContext(
        type="cloud",
        url="https://cloud.example.com",
        email="user@example.com",
        password=password,
    )


def test_local_backends_use_relative_dir(tmp_path):
    path = str(tmp_path / "config")
    cfg = Config("local", {"local": ConfigContext(type="local", dir="store")}, path)

    instances = cfg.get_instances_backend()
    assert isinstance(instances, FileLikeInstancesBackend)
    assert instances.list_instances() == []

    definitions = cfg.get_definitions_backend()
    assert definitions.location() == os.path.join(str(tmp_path), "store", "layerform.definitions.json")

    env = cfg.get_env_vars_backend()
    env.save_variable(EnvVar("FOO", "bar"))
    assert os.path.exists(tmp_path / "store" / "layerform.env")
    assert cfg.get_env_vars_backend().list_variables() == [EnvVar("FOO", "bar")]


def test_local_context_cannot_spawn(tmp_path):
    cfg = Config("local", {"local": ConfigContext(type="local", dir="d")}, str(tmp_path / "c"))
    with pytest.raises(ConfigError):
        cfg.get_spawn_command()
    with pytest.raises(ConfigError):
        cfg.get_kill_command()


def test_unexpected_context_type():
    cfg = Config("x", {"x": ConfigContext(type="weird")}, "/tmp/config")
    with pytest.raises(ConfigError, match="unexpected context type weird"):
        cfg.get_refresh_command()


def test_cloud_definitions_backend_signs_in():
    url = "https://cloud.example.com"
    password = "password"
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, f"{url}/v1/auth/signin", json={"token": "token"}, status=200)
        ctx = ConfigContext(type="cloud", url=url, email="user@example.com", password=password)
        cfg = Config("cloud", {"cloud": ctx}, "/tmp/config")
        backend = cfg.get_definitions_backend()
    assert isinstance(backend, CloudDefinitionsBackend)
    assert backend.location() == url