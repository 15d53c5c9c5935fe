"""Tests for configuration loading."""

import tempfile
from pathlib import Path

import pytest

from marginalia.config import load_config
from marginalia.core.errors import ConfigError


def test_load_config_defaults():
    """Test loading config with defaults when no file exists."""
    config = load_config()

    assert config.vault.root == Path(".")
    assert config.attachments.folder == "attachments"
    assert config.attachments.prefix == "pasted"
    assert config.suggest.mention_trigger == "@"
    assert config.suggest.command_trigger == "/"
    assert config.suggest.max_items == 10
    assert config.paste.uri_schemes == ["obsidian"]
    assert config.logging.level == "WARNING"
    assert config.source is None


def test_load_config_from_file():
    """Test loading config from a file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "marginalia.toml"
        config_path.write_text("""
[vault]
root = "my-vault"

[attachments]
folder = "assets/img"
prefix = "clip"

[suggest]
mention_trigger = "+"
max_items = 5

[paste]
uri_schemes = ["zotero", "obsidian"]

[logging]
level = "debug"
""")

        config = load_config(config_path=config_path)

        assert config.vault.root == Path("my-vault")
        assert config.attachments.folder == "assets/img"
        assert config.attachments.prefix == "clip"
        assert config.suggest.mention_trigger == "+"
        assert config.suggest.command_trigger == "/"
        assert config.suggest.max_items == 5
        assert config.paste.uri_schemes == ["zotero", "obsidian"]
        assert config.logging.level == "DEBUG"
        assert config.source == config_path


def test_load_config_search_cwd(monkeypatch):
    """Test config search in current working directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        monkeypatch.chdir(tmpdir)
        (Path(tmpdir) / "marginalia.toml").write_text("""
[suggest]
max_items = 3
""")

        config = load_config()
        assert config.suggest.max_items == 3


def test_load_config_search_vault():
    """Test config search in vault directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        vault_path = Path(tmpdir) / "vault"
        vault_path.mkdir()
        (vault_path / "marginalia.toml").write_text("""
[attachments]
folder = "files"
""")

        config = load_config(vault_path=vault_path)
        assert config.attachments.folder == "files"
        assert config.vault.root == vault_path


def test_invalid_toml_is_a_config_error():
    """A config file that does not parse is reported, not ignored."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "marginalia.toml"
        config_path.write_text("[suggest\nmax_items = ")
        with pytest.raises(ConfigError):
            load_config(config_path=config_path)


def test_runtime_uses_configured_triggers():
    """Configured triggers reach the suggestion sources of a new session."""
    from marginalia.runtime import build_runtime

    with tempfile.TemporaryDirectory() as tmpdir:
        vault = Path(tmpdir)
        (vault / "marginalia.toml").write_text('[suggest]\nmention_trigger = "+"\n')
        session = build_runtime(vault_path=vault).new_session()
        assert set(session.engine.sources) == {"+", "/"}
