"""Client configuration.

The dispatcher and the stream router only consume resolved values from
StarlingConfig; where those values come from (defaults, a YAML file, the
environment) is decided here.

Resolution order for StarlingConfig.load():
1. Dataclass defaults
2. YAML file (if given)
3. STARLING_* environment variables
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml
from pydantic import ConfigDict, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "STARLING_"

DEFAULT_REST_BASE_URL = "http://api.twitter.com/1/"
DEFAULT_STREAM_BASE_URL = "http://stream.twitter.com/1/"
DEFAULT_USER_STREAM_BASE_URL = "https://userstream.twitter.com/2/"
DEFAULT_SITE_STREAM_BASE_URL = "https://betastream.twitter.com/2b/"


@dataclass
class StarlingConfig:
    """Configuration for the client, its dispatcher and its stream sessions.

    Timeouts and intervals are in seconds.
    """

    # Validation used by from_dict(); numeric YAML values are accepted for text fields
    __pydantic_config__ = ConfigDict(coerce_numbers_to_str=True)

    # Endpoints
    rest_base_url: str = DEFAULT_REST_BASE_URL
    stream_base_url: str = DEFAULT_STREAM_BASE_URL
    user_stream_base_url: str = DEFAULT_USER_STREAM_BASE_URL
    site_stream_base_url: str = DEFAULT_SITE_STREAM_BASE_URL

    # HTTP
    http_connection_timeout: float = 20.0
    http_read_timeout: float = 120.0
    user_agent: str = "starling"

    # Streaming
    stream_read_timeout: float = 300.0
    retry_interval: float = 5.0  # Backoff seed
    max_retry_interval: float = 240.0  # Backoff cap

    # Dispatcher
    async_num_workers: int = 1

    # Basic credentials (optional)
    user: str | None = None
    password: str | None = field(default=None, repr=False)

    def validate(self) -> StarlingConfig:
        """Check value ranges.

        Raises:
            ValueError: If a value is out of range
        """
        if self.async_num_workers < 1:
            raise ValueError(f"async_num_workers must be >= 1, got {self.async_num_workers}")
        for name in (
            "http_connection_timeout",
            "http_read_timeout",
            "stream_read_timeout",
            "retry_interval",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.max_retry_interval < self.retry_interval:
            raise ValueError(
                f"max_retry_interval ({self.max_retry_interval}) must not be below "
                f"retry_interval ({self.retry_interval})"
            )
        return self

    def to_dict(self, include_secrets: bool = False) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        if not include_secrets and data.get("password"):
            data["password"] = "***"
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], base: StarlingConfig | None = None) -> StarlingConfig:
        """Build a config from a mapping; unknown keys are ignored with a warning.

        Values are validated against the field types, so "4" is accepted for
        an integer field but 2.7 is not.

        Raises:
            ValueError: If a value does not fit its field's type
        """
        known = {f.name for f in fields(cls)}
        merged = dataclasses.asdict(base or cls())
        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown config key: {key}")
                continue
            merged[key] = value
        try:
            return _config_adapter.validate_python(merged)
        except ValidationError as e:
            raise ValueError(f"Invalid config values: {e}") from e

    @classmethod
    def from_file(cls, path: str | Path, base: StarlingConfig | None = None) -> StarlingConfig:
        """Load configuration from a YAML file.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not a YAML mapping
        """
        with open(path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        return cls.from_dict(data, base=base)

    @classmethod
    def from_env(cls, base: StarlingConfig | None = None) -> StarlingConfig:
        """Apply STARLING_<FIELD> environment variables on top of `base`."""
        data: dict[str, Any] = {}
        for f in fields(cls):
            value = os.getenv(f"{ENV_PREFIX}{f.name.upper()}")
            if value is not None:
                data[f.name] = value
        return cls.from_dict(data, base=base)

    @classmethod
    def load(cls, path: str | Path | None = None) -> StarlingConfig:
        """Resolve defaults, then the YAML file, then the environment."""
        config = cls()
        if path is not None:
            config = cls.from_file(path, base=config)
        return cls.from_env(base=config).validate()


_config_adapter: TypeAdapter[StarlingConfig] = TypeAdapter(StarlingConfig)
