import os
from pathlib import Path
from typing import Dict, Optional

import toml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError


class TransportConfig(BaseModel):
    """Transport selection settings."""

    # Hosts that redirect stdin/stdout instead of passing a socket handle.
    # Matched as case-insensitive substrings of the drop file BBS name.
    stdio_hosts: list[str] = Field(default_factory=lambda: [
        "EleBBS", "WWIV", "GameSrv",
    ])
    write_retries: int = 3

    @field_validator('write_retries')
    @classmethod
    def validate_write_retries(cls, v: int) -> int:
        if v < 0:
            raise ConfigurationError("write_retries cannot be negative")
        if v > 50:
            raise ConfigurationError("write_retries too high (max 50)")
        return v


class SerialConfig(BaseModel):
    default_baud: int = 115200
    read_timeout: float = 0.5
    # DOOR.SYS names ports DOS style ("COM1"); map them to device paths.
    port_aliases: Dict[str, str] = Field(default_factory=dict)

    @field_validator('default_baud')
    @classmethod
    def validate_baud(cls, v: int) -> int:
        if v < 300:
            raise ConfigurationError(f"default_baud too low: {v}")
        return v


class CharsetConfig(BaseModel):
    legacy_encoding: str = "cp437"
    force_utf8: bool = False


class SysOpConfig(BaseModel):
    """SysOp console settings."""

    default_threshold: int = 100

    @field_validator('default_threshold')
    @classmethod
    def validate_threshold(cls, v: int) -> int:
        if not 0 <= v <= 65535:
            raise ConfigurationError(f"default_threshold must be 0-65535, got {v}")
        return v


class PathsConfig(BaseModel):
    save_root: str = "saves"
    config_dir: str = "config"


class GameConfig(BaseModel):
    # "package.module:coroutine" receiving the Session
    entry_point: Optional[str] = None


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    max_bytes: int = 1048576
    backup_count: int = 3


class Config(BaseSettings):
    transport: TransportConfig = Field(default_factory=TransportConfig)
    serial: SerialConfig = Field(default_factory=SerialConfig)
    charset: CharsetConfig = Field(default_factory=CharsetConfig)
    sysop: SysOpConfig = Field(default_factory=SysOpConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    game: GameConfig = Field(default_factory=GameConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="DOOR_",
        env_nested_delimiter="__",
    )

    @classmethod
    def from_toml(cls, path: str | Path) -> "Config":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r") as f:
            try:
                data = toml.load(f)
            except toml.TomlDecodeError as e:
                raise ConfigurationError(f"Invalid config file {path}: {e}") from e

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid settings in {path}: {e}") from e


_config: Optional[Config] = None


def load_config(path: Optional[str | Path] = None) -> Config:
    global _config
    if _config is None:
        if path is None:
            path = os.environ.get("DOOR_CONFIG", "door.toml")

        config_path = Path(path)
        if config_path.exists():
            _config = Config.from_toml(config_path)
        else:
            _config = Config()

    return _config


def get_config() -> Config:
    if _config is None:
        return load_config()
    return _config


def reset_config() -> None:
    """Forget the loaded configuration (tests, re-exec)."""
    global _config
    _config = None
