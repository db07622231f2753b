"""Configuration module for the SupplyGraph request middleware.

This module provides the IdempotencyConfig and ETagConfig classes that control
the Idempotency Coordinator and the Response Cache Tagger.

Example:
    Basic usage with defaults:

        >>> config = IdempotencyConfig()
        >>> config.enabled_methods
        ['POST', 'PUT', 'PATCH']
        >>> config.ttl_ms
        86400000

    Custom configuration:

        >>> config = IdempotencyConfig(
        ...     ttl_ms=3_600_000,
        ...     require_header=True,
        ... )

    Loading from environment:

        >>> import os
        >>> os.environ['IDEMPOTENCY_TTL_MS'] = '3600000'
        >>> os.environ['IDEMPOTENCY_REQUIRE_HEADER'] = 'true'
        >>> config = IdempotencyConfig.from_env()
"""

import os
from typing import Any

from pydantic import BaseModel, Field, field_validator

# Valid HTTP methods
VALID_HTTP_METHODS = {
    "GET",
    "HEAD",
    "POST",
    "PUT",
    "DELETE",
    "CONNECT",
    "OPTIONS",
    "TRACE",
    "PATCH",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _normalize_methods(v: Any, field_name: str) -> list[str]:
    if isinstance(v, str):
        # Handle comma-separated string (from environment variables)
        v = [method.strip() for method in v.split(",") if method.strip()]

    if not isinstance(v, list):
        raise ValueError(f"{field_name} must be a list or comma-separated string")

    methods = [method.upper() for method in v]

    invalid_methods = set(methods) - VALID_HTTP_METHODS
    if invalid_methods:
        raise ValueError(
            f"Invalid HTTP methods: {', '.join(sorted(invalid_methods))}. "
            f"Valid methods are: {', '.join(sorted(VALID_HTTP_METHODS))}"
        )

    return methods


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def _load_env(prefix: str, field_types: dict[str, type]) -> dict[str, Any]:
    config_dict: dict[str, Any] = {}

    for field_name, field_type in field_types.items():
        env_var = f"{prefix}{field_name.upper()}"
        env_value = os.environ.get(env_var)

        if env_value is None:
            continue

        if field_type is int:
            config_dict[field_name] = int(env_value)
        elif field_type is bool:
            config_dict[field_name] = _parse_bool(env_value)
        else:
            # Lists stay comma-separated strings; validators split them
            config_dict[field_name] = env_value

    return config_dict


class IdempotencyConfig(BaseModel):
    """Configuration for the Idempotency Coordinator.

    Attributes:
        enabled_methods: HTTP methods that are deduplicated. All other methods
            pass straight through to the handler. Default: POST, PUT, PATCH.
        ttl_ms: Validity window of a cached response, in milliseconds.
            Must be between 1 and 604800000 (7 days). Default is 86400000 (24h).
        require_header: When True, mutating requests without an
            Idempotency-Key header are rejected with HTTP 400.
        poll_interval_ms: Delay between cache checks while a duplicate waits
            for an in-flight request. Default 100ms.
        max_poll_attempts: Number of cache checks before the waiting duplicate
            gives up and executes the handler itself. Default 50 (5s ceiling).
        sweep_interval_seconds: Interval of the background sweep. Default 300.
        in_flight_ceiling_seconds: Age after which an in-flight marker is
            considered abandoned and removed by the sweep. Default 300.

    Note:
        This class is immutable (frozen=True). Create a new instance if you
        need different settings.
    """

    enabled_methods: list[str] | str = Field(
        default=["POST", "PUT", "PATCH"],
        description="HTTP methods that are deduplicated",
    )
    ttl_ms: int = Field(
        default=86_400_000,
        description="Validity window of cached responses in milliseconds (1-604800000)",
    )
    require_header: bool = Field(
        default=False,
        description="Reject mutating requests that carry no Idempotency-Key header",
    )
    poll_interval_ms: int = Field(
        default=100,
        description="Delay between cache checks while waiting for an in-flight request",
    )
    max_poll_attempts: int = Field(
        default=50,
        description="Number of cache checks before falling through to execution",
    )
    sweep_interval_seconds: int = Field(
        default=300,
        description="Interval of the background sweep in seconds",
    )
    in_flight_ceiling_seconds: int = Field(
        default=300,
        description="Age after which an in-flight marker is considered abandoned",
    )

    model_config = {"frozen": True}

    @field_validator("enabled_methods", mode="before")
    @classmethod
    def validate_enabled_methods(cls, v: Any) -> list[str]:
        """Validate and normalize enabled HTTP methods.

        Example:
            >>> IdempotencyConfig(enabled_methods="post, put").enabled_methods
            ['POST', 'PUT']
        """
        return _normalize_methods(v, "enabled_methods")

    @field_validator("ttl_ms")
    @classmethod
    def validate_ttl_ms(cls, v: int) -> int:
        if not (1 <= v <= 604_800_000):
            raise ValueError(f"ttl_ms must be between 1 and 604800000 (7 days), got {v}")
        return v

    @field_validator("poll_interval_ms")
    @classmethod
    def validate_poll_interval_ms(cls, v: int) -> int:
        if not (1 <= v <= 10_000):
            raise ValueError(f"poll_interval_ms must be between 1 and 10000, got {v}")
        return v

    @field_validator("max_poll_attempts")
    @classmethod
    def validate_max_poll_attempts(cls, v: int) -> int:
        if not (0 <= v <= 10_000):
            raise ValueError(f"max_poll_attempts must be between 0 and 10000, got {v}")
        return v

    @field_validator("sweep_interval_seconds", "in_flight_ceiling_seconds")
    @classmethod
    def validate_seconds(cls, v: int, info: Any) -> int:
        if not (1 <= v <= 86_400):
            raise ValueError(f"{info.field_name} must be between 1 and 86400, got {v}")
        return v

    @property
    def max_wait_seconds(self) -> float:
        """Upper bound a duplicate request spends polling for a cached result."""
        return self.poll_interval_ms * self.max_poll_attempts / 1000.0

    @classmethod
    def from_env(cls, prefix: str = "IDEMPOTENCY_") -> "IdempotencyConfig":
        """Create configuration from environment variables.

        Variable names are the uppercase field names with the prefix, e.g.
        ``IDEMPOTENCY_TTL_MS`` or ``IDEMPOTENCY_REQUIRE_HEADER``. Missing
        variables fall back to the defaults.
        """
        field_types: dict[str, type] = {
            "enabled_methods": list,
            "ttl_ms": int,
            "require_header": bool,
            "poll_interval_ms": int,
            "max_poll_attempts": int,
            "sweep_interval_seconds": int,
            "in_flight_ceiling_seconds": int,
        }
        return cls(**_load_env(prefix, field_types))

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "IdempotencyConfig":
        """Create configuration from a dictionary.

        Accepts the camelCase option names ``ttl`` and ``requireHeader`` as
        aliases for ``ttl_ms`` and ``require_header``.

        Raises:
            ValidationError: If the dictionary contains invalid values.
        """
        values = dict(config_dict)
        if "ttl" in values:
            values.setdefault("ttl_ms", values.pop("ttl"))
        if "requireHeader" in values:
            values.setdefault("require_header", values.pop("requireHeader"))
        return cls(**values)


class ETagConfig(BaseModel):
    """Configuration for the Response Cache Tagger.

    Attributes:
        methods: Request methods whose responses are tagged. Default GET, HEAD.
        tag_length: Number of hex characters of the digest kept in the tag.
        cache_control: Cache-Control directive sent with tagged responses.
    """

    methods: list[str] | str = Field(
        default=["GET", "HEAD"],
        description="Request methods whose responses are tagged",
    )
    tag_length: int = Field(
        default=16,
        description="Number of digest hex characters in the tag (8-64)",
    )
    cache_control: str = Field(
        default="private, no-cache",
        description="Cache-Control directive sent with tagged responses",
    )

    model_config = {"frozen": True}

    @field_validator("methods", mode="before")
    @classmethod
    def validate_methods(cls, v: Any) -> list[str]:
        return _normalize_methods(v, "methods")

    @field_validator("tag_length")
    @classmethod
    def validate_tag_length(cls, v: int) -> int:
        if not (8 <= v <= 64):
            raise ValueError(f"tag_length must be between 8 and 64, got {v}")
        return v

    @classmethod
    def from_env(cls, prefix: str = "ETAG_") -> "ETagConfig":
        """Create configuration from ``ETAG_*`` environment variables."""
        field_types: dict[str, type] = {
            "methods": list,
            "tag_length": int,
            "cache_control": str,
        }
        return cls(**_load_env(prefix, field_types))

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "ETagConfig":
        return cls(**config_dict)
