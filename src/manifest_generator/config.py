"""
Service configuration.

Settings are assembled from defaults, an optional YAML file and
environment variables, in increasing order of precedence.

The YAML file uses flat dotted keys:

    object.expiration.delay: 30
    object.expiration.timeunit: MINUTES
    http.port: 8080
    aws.key: AKIA...
    aws.secret: ...
    aws.region: us-east-1

Environment variables:
- MG_CONFIG_FILE: Path to the YAML file
- MG_OBJECT_EXPIRATION_DELAY / MG_OBJECT_EXPIRATION_TIMEUNIT
- MG_HTTP_HOST / MG_HTTP_PORT
- MG_AWS_REGION, MG_STORAGE_DOMAIN
- AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY
- MG_WORKER_POOL_SIZE
- MG_SWEEP_ON_STARTUP / MG_SWEEP_PREFIX_ONLY
- MG_TEMPLATE_DIR / MG_ASSETS_DIR
- MG_FETCH_TIMEOUT, MG_MAX_UPLOAD_SIZE, MG_LOG_LEVEL
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, PositiveInt, ValidationError

from manifest_generator.core.exceptions import ConfigurationError
from manifest_generator.core.models import ExpirationPolicy, TimeUnit

logger = logging.getLogger(__name__)

DEFAULT_EXPIRATION_DELAY = 30  # minutes
DEFAULT_MAX_UPLOAD_SIZE = 512 * 1024 * 1024

# Dotted YAML key -> settings field
_FILE_KEYS = {
    "object.expiration.delay": "expiration_delay",
    "object.expiration.timeunit": "expiration_unit",
    "http.host": "http_host",
    "http.port": "http_port",
    "aws.key": "aws_access_key_id",
    "aws.secret": "aws_secret_access_key",
    "aws.region": "aws_region",
    "storage.domain": "storage_domain",
    "worker.pool.size": "worker_pool_size",
    "sweep.on.startup": "sweep_on_startup",
    "sweep.prefix.only": "sweep_prefix_only",
    "template.dir": "template_dir",
    "assets.dir": "assets_dir",
    "fetch.timeout": "fetch_timeout_seconds",
    "upload.max.size": "max_upload_size",
    "log.level": "log_level",
}

_ENV_KEYS = {
    "MG_OBJECT_EXPIRATION_DELAY": "expiration_delay",
    "MG_OBJECT_EXPIRATION_TIMEUNIT": "expiration_unit",
    "MG_HTTP_HOST": "http_host",
    "MG_HTTP_PORT": "http_port",
    "AWS_ACCESS_KEY_ID": "aws_access_key_id",
    "AWS_SECRET_ACCESS_KEY": "aws_secret_access_key",
    "MG_AWS_REGION": "aws_region",
    "MG_STORAGE_DOMAIN": "storage_domain",
    "MG_WORKER_POOL_SIZE": "worker_pool_size",
    "MG_SWEEP_ON_STARTUP": "sweep_on_startup",
    "MG_SWEEP_PREFIX_ONLY": "sweep_prefix_only",
    "MG_TEMPLATE_DIR": "template_dir",
    "MG_ASSETS_DIR": "assets_dir",
    "MG_FETCH_TIMEOUT": "fetch_timeout_seconds",
    "MG_MAX_UPLOAD_SIZE": "max_upload_size",
    "MG_LOG_LEVEL": "log_level",
}


class Settings(BaseModel):
    """Validated service settings."""

    expiration_delay: PositiveInt = DEFAULT_EXPIRATION_DELAY
    expiration_unit: TimeUnit = TimeUnit.MINUTES
    http_host: str = "0.0.0.0"
    http_port: int = Field(default=80, ge=1, le=65535)
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_region: str = "us-east-1"
    storage_domain: str = "s3.amazonaws.com"
    worker_pool_size: PositiveInt = 8
    sweep_on_startup: bool = True
    sweep_prefix_only: bool = True
    template_dir: Path | None = None
    assets_dir: Path | None = None
    fetch_timeout_seconds: float = Field(default=60.0, gt=0)
    max_upload_size: PositiveInt = DEFAULT_MAX_UPLOAD_SIZE
    log_level: str = "INFO"

    @property
    def expiration_policy(self) -> ExpirationPolicy:
        """Expiration policy applied to every published bucket."""
        return ExpirationPolicy(delay=self.expiration_delay, unit=self.expiration_unit)


def parse_size(value: str | int) -> int:
    """
    Parse a byte size with an optional K, M or G suffix.

    Args:
        value: Size such as "512M", "10K" or "1048576"

    Returns:
        Size in bytes

    Raises:
        ValueError: If the value is not a valid size
    """
    if isinstance(value, int):
        return value
    text = value.strip().upper()
    multipliers = {
        "K": 1024,
        "M": 1024 * 1024,
        "G": 1024 * 1024 * 1024,
    }
    for suffix, multiplier in multipliers.items():
        if text.endswith(suffix):
            return int(text[:-1]) * multiplier
    return int(text)


def _read_config_file(path: Path) -> dict[str, Any]:
    """Read the YAML config file into settings field names."""
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read config file: {e}", config_key="MG_CONFIG_FILE"
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML in config file: {e}", config_key="MG_CONFIG_FILE"
        ) from e

    if not isinstance(raw, dict):
        raise ConfigurationError(
            "Config file must contain a mapping", config_key="MG_CONFIG_FILE"
        )

    values: dict[str, Any] = {}
    for key, value in raw.items():
        field_name = _FILE_KEYS.get(str(key))
        if field_name is None:
            logger.warning(f"Ignoring unknown config key: {key}")
            continue
        values[field_name] = value
    return values


def _read_environment(environ: dict[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for env_key, field_name in _ENV_KEYS.items():
        value = environ.get(env_key)
        if value is not None and value != "":
            values[field_name] = value
    return values


def load_settings(
    config_path: Path | None = None,
    environ: dict[str, str] | None = None,
) -> Settings:
    """
    Load settings from file and environment.

    Args:
        config_path: Optional YAML file (default: MG_CONFIG_FILE if set)
        environ: Environment mapping (default: os.environ)

    Returns:
        Validated Settings

    Raises:
        ConfigurationError: If a value is invalid or the file is unreadable
    """
    environ = dict(os.environ) if environ is None else environ
    if config_path is None and environ.get("MG_CONFIG_FILE"):
        config_path = Path(environ["MG_CONFIG_FILE"])

    values: dict[str, Any] = {}
    if config_path is not None:
        values.update(_read_config_file(config_path))
    values.update(_read_environment(environ))

    if "max_upload_size" in values:
        try:
            values["max_upload_size"] = parse_size(values["max_upload_size"])
        except (ValueError, AttributeError) as e:
            raise ConfigurationError(
                f"Invalid upload size: {values['max_upload_size']}",
                config_key="max_upload_size",
            ) from e

    if isinstance(values.get("expiration_unit"), str):
        values["expiration_unit"] = values["expiration_unit"].strip().upper()

    try:
        return Settings(**values)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ConfigurationError(
            f"Invalid configuration: {fields}",
            details={"errors": [err["msg"] for err in e.errors()]},
        ) from e
