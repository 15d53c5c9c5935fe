"""Configuration loader for marginalia.toml."""

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .core.errors import ConfigError

CONFIG_NAME = "marginalia.toml"


@dataclass
class VaultConfig:
    """Vault-specific configuration."""
    root: Path


@dataclass
class AttachmentConfig:
    """Where pasted images are stored."""
    folder: str = "attachments"
    prefix: str = "pasted"


@dataclass
class SuggestConfig:
    """Autocomplete triggers and list length."""
    mention_trigger: str = "@"
    command_trigger: str = "/"
    max_items: int = 10


@dataclass
class PasteConfig:
    """URI schemes treated as absolute links besides http(s) and file."""
    uri_schemes: list[str] = field(default_factory=lambda: ["obsidian"])


@dataclass
class LoggingConfig:
    level: str = "WARNING"


@dataclass
class MarginaliaConfig:
    """Complete marginalia configuration."""
    vault: VaultConfig
    attachments: AttachmentConfig
    suggest: SuggestConfig
    paste: PasteConfig
    logging: LoggingConfig
    source: Path | None = None  # file the settings came from, if any


def load_config(config_path: Path | None = None, vault_path: Path | None = None) -> MarginaliaConfig:
    """
    Load configuration from marginalia.toml.

    Search order:
    1. config_path (if provided)
    2. cwd/marginalia.toml
    3. vault_path/marginalia.toml

    Args:
        config_path: Explicit path to config file
        vault_path: Vault root path for fallback search

    Returns:
        MarginaliaConfig with resolved settings

    Raises:
        ConfigError: the file exists but is not valid TOML
    """
    toml_data: dict[str, Any] = {}
    source = None

    search_paths = []
    if config_path:
        search_paths.append(config_path)
    search_paths.append(Path.cwd() / CONFIG_NAME)
    if vault_path:
        search_paths.append(vault_path / CONFIG_NAME)

    for path in search_paths:
        if path.exists():
            try:
                with open(path, "rb") as f:
                    toml_data = tomllib.load(f)
            except (tomllib.TOMLDecodeError, OSError) as exc:
                raise ConfigError(f"Cannot read {path}: {exc}") from exc
            source = path
            break

    vault_data = toml_data.get("vault", {})
    vault_config = VaultConfig(root=Path(vault_data.get("root", vault_path or Path("."))))

    att_data = toml_data.get("attachments", {})
    attachments = AttachmentConfig(
        folder=att_data.get("folder", "attachments"),
        prefix=att_data.get("prefix", "pasted"),
    )

    suggest_data = toml_data.get("suggest", {})
    suggest = SuggestConfig(
        mention_trigger=suggest_data.get("mention_trigger", "@"),
        command_trigger=suggest_data.get("command_trigger", "/"),
        max_items=int(suggest_data.get("max_items", 10)),
    )

    paste_data = toml_data.get("paste", {})
    paste = PasteConfig(uri_schemes=list(paste_data.get("uri_schemes", ["obsidian"])))

    log_data = toml_data.get("logging", {})
    logging_config = LoggingConfig(level=str(log_data.get("level", "WARNING")).upper())

    return MarginaliaConfig(
        vault=vault_config,
        attachments=attachments,
        suggest=suggest,
        paste=paste,
        logging=logging_config,
        source=source,
    )
