import os

import pytest

from ektask import config
from ektask.errors import ConfigError


def write(tmp_path, text):
    path = tmp_path / "config.yml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_missing_default_file_gives_defaults(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "DEFAULT_CONFIG_PATH", str(tmp_path / "absent.yml"))
    cfg = config.load_config()
    assert cfg.db == config.DEFAULT_DB_PATH
    assert cfg.prompt == "> "
    assert cfg.log_level == "ERROR"
    assert cfg.include_deleted is False
    assert cfg.cursor_timeout == 1.0


def test_missing_explicit_file_is_an_error(tmp_path):
    with pytest.raises(ConfigError):
        config.load_config(str(tmp_path / "absent.yml"))


def test_empty_file_gives_defaults(tmp_path):
    cfg = config.load_config(write(tmp_path, ""))
    assert cfg == config.Config(editor=cfg.editor)


def test_values_are_read(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    path = write(tmp_path, """
db: ~/tasks.db
prompt: "ek> "
log_level: debug
log_file: /tmp/ek-test.log
editor: nano -w
include_deleted: true
cursor_timeout: 2
""")
    cfg = config.load_config(path)
    assert cfg.db == os.path.join(str(tmp_path), "tasks.db")
    assert cfg.prompt == "ek> "
    assert cfg.log_level == "DEBUG"
    assert cfg.log_file == "/tmp/ek-test.log"
    assert cfg.editor == "nano -w"
    assert cfg.include_deleted is True
    assert cfg.cursor_timeout == 2.0


def test_editor_defaults_to_environment(tmp_path, monkeypatch):
    monkeypatch.delenv("VISUAL", raising=False)
    monkeypatch.setenv("EDITOR", "ed")
    cfg = config.load_config(write(tmp_path, "prompt: '$ '\n"))
    assert cfg.editor == "ed"


@pytest.mark.parametrize("text", [
    "db: 5\n",
    "include_deleted: 'yes'\n",
    "cursor_timeout: fast\n",
    "cursor_timeout: true\n",
    "cursor_timeout: 0\n",
    "prompt: [1, 2]\n",
])
def test_bad_values_are_rejected(tmp_path, text):
    with pytest.raises(ConfigError):
        config.load_config(write(tmp_path, text))


def test_non_mapping_document_is_rejected(tmp_path):
    with pytest.raises(ConfigError):
        config.load_config(write(tmp_path, "- just\n- a list\n"))


def test_unparseable_yaml_is_rejected(tmp_path):
    with pytest.raises(ConfigError):
        config.load_config(write(tmp_path, "db: [unclosed\n"))
