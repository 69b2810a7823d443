"""Configuration manager for persistent settings stored as JSON."""

import json
import socket
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import (
    ConfigurationError,
    FileSystemError,
    InvalidConfigError,
    MailwireError,
    MissingConfigError,
)
from .logging import get_logger, log_call
from .paths import CONFIG_PATH, LOGS_DIR, MAILDROP_DIR

logger = get_logger(__name__)

UPGRADE_POLICIES = ("none", "best_effort", "required")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class _Section(BaseModel):
    model_config = ConfigDict(validate_assignment=True)


class ServerConfig(_Section):
    """Settings shared by both protocols."""

    host: str = ""
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    implicit_tls: bool = False
    upgrade_policy: str = "none"
    allow_insecure_cert: bool = False
    timeout: float = Field(default=30.0, gt=0)  # in seconds
    read_timeout: float = Field(default=60.0, gt=0)  # in seconds
    encoding: str = "utf-8"

    @field_validator("upgrade_policy")
    @classmethod
    def _check_policy(cls, value: str) -> str:
        value = value.lower()
        if value not in UPGRADE_POLICIES:
            raise ValueError(f"must be one of {', '.join(UPGRADE_POLICIES)}")
        return value


class POP3Config(ServerConfig):
    """Pydantic model for mailbox retrieval settings."""

    encoding: str = "cp1252"
    username: str = ""
    password: Optional[str] = None
    use_apop: bool = False
    keep_on_server: bool = False
    query_capabilities: bool = False
    download_dir: str = str(MAILDROP_DIR)


class SMTPConfig(ServerConfig):
    """Pydantic model for message submission settings."""

    helo_name: str = Field(default_factory=socket.gethostname)
    sender: Optional[str] = None
    recipients: List[str] = Field(default_factory=list)
    delete_after_send: bool = False


class LoggingConfig(_Section):
    """Pydantic model for logging settings."""

    console_level: str = "WARNING"
    file_level: str = "DEBUG"
    log_dir: Optional[str] = str(LOGS_DIR)
    max_file_size: int = 5_242_880  # 5 MB
    backup_count: int = 5

    @field_validator("console_level", "file_level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        value = value.upper()
        if value not in LOG_LEVELS:
            raise ValueError(f"must be one of {', '.join(LOG_LEVELS)}")
        return value


class AppConfig(_Section):
    """Pydantic model for overall application configuration."""

    version: str = "0.1.0"
    pop3: POP3Config = Field(default_factory=POP3Config)
    smtp: SMTPConfig = Field(default_factory=SMTPConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ConfigManager:
    """Manages persistent application configuration."""

    def __init__(self, config_path: Optional[Path] = None, create: bool = True):
        """Load the configuration file.

        Args:
            config_path: JSON file; ~/.mailwire/config.json by default
            create: Write a default file when none exists
        """
        self.path = Path(config_path) if config_path else CONFIG_PATH
        self.create = create
        self.config = self._load_or_create_config()
        logger.debug(f"Configuration loaded from {self.path}")

    def _load_or_create_config(self) -> AppConfig:
        """Load configuration from file or create default if not present."""

        if not self.path.exists():
            logger.info("No config file found, using default configuration.")
            config = AppConfig()
            if self.create:
                self._save_config(config)
            return config

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            config = AppConfig(**data)
            logger.debug("Configuration successfully loaded and validated.")
            return config

        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse config file: {e}")
            raise InvalidConfigError(
                f"Configuration file is not valid JSON: {str(e)}"
            ) from e
        except ValidationError as e:
            logger.error(f"Failed to validate config file: {e}")
            raise InvalidConfigError(
                f"Configuration data does not match expected schema: {str(e)}"
            ) from e
        except OSError as e:
            raise FileSystemError(
                f"Failed to read configuration file: {str(e)}",
                details={"path": str(self.path)},
            ) from e

    def _save_config(self, config: Optional[AppConfig] = None):
        """Save the current configuration to file."""

        config = config or self.config

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(config.model_dump(), f, indent=2, ensure_ascii=False)
            logger.debug("Configuration successfully saved.")
        except OSError as e:
            raise FileSystemError(
                f"Failed to write configuration file: {str(e)}",
                details={"path": str(self.path)},
            ) from e

    def _resolve(self, key_path: str):
        keys = key_path.split(".")
        obj = self.config

        for key in keys[:-1]:
            if not isinstance(obj, BaseModel) or key not in type(obj).model_fields:
                raise MissingConfigError(
                    f"Configuration path '{key_path}' is invalid: '{key}' not found"
                )
            obj = getattr(obj, key)

        if not isinstance(obj, BaseModel) or keys[-1] not in type(obj).model_fields:
            raise MissingConfigError(
                f"Configuration key '{keys[-1]}' does not exist in path '{key_path}'"
            )

        return obj, keys[-1]

    def get_config(self, key_path: str) -> Any:
        """Get a configuration value using dot-separated key path."""
        obj, key = self._resolve(key_path)
        return getattr(obj, key)

    @log_call
    def set_config(self, key_path: str, value: Any, persist: bool = True):
        """Set a configuration value using dot-separated key path.

        Raises:
            MissingConfigError: If the key does not exist
            InvalidConfigError: If the value fails validation
        """
        try:
            obj, key = self._resolve(key_path)
            setattr(obj, key, value)

            if persist:
                self._save_config()

            logger.info(f"Config key '{key_path}' updated.")

        except ValidationError as e:
            raise InvalidConfigError(
                f"Invalid value for '{key_path}': {e.errors()[0]['msg']}",
                details={"key": key_path},
            ) from e
        except MailwireError:
            raise
        except Exception as e:
            raise ConfigurationError(
                f"Failed to set configuration key '{key_path}': {str(e)}"
            ) from e

    @log_call
    def reset_to_defaults(self):
        """Reset configuration to default values."""
        logger.warning("Resetting configuration to default values.")
        self.config = AppConfig()
        self._save_config()
