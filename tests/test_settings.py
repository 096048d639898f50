from pathlib import Path

import pytest

from execbox.core.errors import ConfigError
from execbox.core.models import RecipeKind
from execbox.services.dispatcher import Dispatcher
from execbox.settings import Settings, load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for k in ("SBX_CONF", "SBX_TIMEOUT_S", "SBX_WORKSPACE_ROOT", "SBX_LANGUAGES_FILE"):
        monkeypatch.delenv(k, raising=False)


def test_defaults(tmp_path):
    s = load_settings(str(tmp_path / "absent.yaml"))
    assert s.timeout_s == 10.0
    assert s.port == 8080
    assert s.registry().names() == {"python", "javascript", "cpp", "java"}


def test_env_override(monkeypatch, tmp_path):
    monkeypatch.setenv("SBX_TIMEOUT_S", "2.5")
    monkeypatch.setenv("SBX_WORKSPACE_ROOT", str(tmp_path))
    s = load_settings(str(tmp_path / "absent.yaml"))
    assert s.timeout_s == 2.5
    assert s.workspace_root == tmp_path


def test_yaml_wins_over_env(monkeypatch, tmp_path):
    monkeypatch.setenv("SBX_TIMEOUT_S", "2.5")
    conf = tmp_path / "execbox.yaml"
    conf.write_text(
        "timeout_s: 4\n"
        f"workspace_root: {tmp_path / 'runs'}\n"
        "languages:\n"
        "  c:\n"
        "    kind: compile_artifact\n"
        "    compiler: gcc\n"
        "    filename: main.c\n"
        "    run_cmd: ./a.out\n"
        "    build_args: ['-o', 'a.out']\n",
        encoding="utf-8",
    )
    s = load_settings(str(conf))
    assert s.timeout_s == 4.0
    assert s.workspace_root == tmp_path / "runs"

    d = Dispatcher.from_settings(s)
    assert d.timeout_s == 4.0
    assert d.workspaces.root == tmp_path / "runs"
    assert d.registry.resolve("c").kind is RecipeKind.COMPILE_ARTIFACT
    assert "java" in d.list_languages()


def test_conf_from_env_var(monkeypatch, tmp_path):
    conf = tmp_path / "other.yaml"
    conf.write_text("kill_grace_s: 0.5\n", encoding="utf-8")
    monkeypatch.setenv("SBX_CONF", str(conf))
    assert load_settings().kill_grace_s == 0.5


def test_languages_file(tmp_path):
    f = tmp_path / "langs.yaml"
    f.write_text("ruby: {compiler: ruby, filename: main.rb, run_cmd: ruby, build_args: ['-c', '{}']}\n",
                 encoding="utf-8")
    reg = Settings(languages_file=f).registry()
    assert reg.resolve("ruby").build_args == ("-c", "{}")
    assert "python" in reg


def test_bad_yaml(tmp_path):
    conf = tmp_path / "bad.yaml"
    conf.write_text("timeout_s: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(str(conf))


def test_bad_recipe_in_settings():
    s = Settings(languages={"x": {"kind": "nope", "compiler": "a", "filename": "b", "run_cmd": "c"}})
    with pytest.raises(ConfigError, match="unknown kind"):
        s.registry()


def test_repo_conf_is_valid():
    conf = Path(__file__).resolve().parents[1] / "conf" / "execbox.yaml"
    reg = load_settings(str(conf)).registry()
    assert {"c", "bash", "python", "cpp"} <= reg.names()
