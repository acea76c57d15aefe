"""
perfkit configuration.

Defines environment-specific configuration classes for the library's
tunables (refresh ratio, allocation bound, log previews) and the
immutable :class:`TokenConfig` record that describes how to obtain an
auth token.  The ``get_config`` factory selects a settings class from
the ``PERFKIT_ENV`` environment variable (or an explicit key).

Key Concepts Demonstrated:
- Class-based configuration with inheritance for shared defaults
- Environment-variable overrides so CI can tune a run without code edits
- A frozen dataclass for the token endpoint, validated on construction
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from perfkit.errors import ConfigError


class Config:
    """
    Base (shared) configuration.

    Every setting can be overridden by an environment variable of the
    same name prefixed with ``PERFKIT_``.
    """

    LOG_LEVEL: str = os.environ.get("PERFKIT_LOG_LEVEL", "INFO")

    # Fraction of the token lifetime after which a refresh is attempted.
    TOKEN_REFRESH_RATIO: float = float(os.environ.get("PERFKIT_TOKEN_REFRESH_RATIO", "0.8"))

    # Pause taken by a caller that finds a refresh already running.
    TOKEN_REFRESH_WAIT_SECONDS: float = float(
        os.environ.get("PERFKIT_TOKEN_REFRESH_WAIT_SECONDS", "0.1")
    )

    TOKEN_REQUEST_TIMEOUT: float = float(os.environ.get("PERFKIT_TOKEN_REQUEST_TIMEOUT", "30"))

    # Users one Locust worker process may spawn; spaces worker ids apart
    # across processes.  The highest worker id is about
    # processes * USERS_PER_PROCESS, so the dataset needs that many times
    # MAX_ROWS_PER_WORKER rows.
    USERS_PER_PROCESS: int = int(os.environ.get("PERFKIT_USERS_PER_PROCESS", "100"))

    # Upper bound on runs per worker assumed by the unique-row allocator.
    MAX_ROWS_PER_WORKER: int = int(os.environ.get("PERFKIT_MAX_ROWS_PER_WORKER", "1000"))

    # Number of response-body characters kept in logs and error records.
    BODY_PREVIEW_CHARS: int = int(os.environ.get("PERFKIT_BODY_PREVIEW_CHARS", "200"))

    SUMMARY_SAMPLE_SIZE: int = int(os.environ.get("PERFKIT_SUMMARY_SAMPLE_SIZE", "3"))

    RESPONSE_TIME_CEILING_MS: float = float(
        os.environ.get("PERFKIT_RESPONSE_TIME_CEILING_MS", "5000")
    )


class DevelopmentConfig(Config):
    """Local runs: verbose logging."""

    LOG_LEVEL: str = os.environ.get("PERFKIT_LOG_LEVEL", "DEBUG")


class TestingConfig(Config):
    """
    Test-suite overrides.

    The refresh wait is zero so tests that exercise the busy-refresh path
    do not sleep.
    """

    TOKEN_REFRESH_WAIT_SECONDS: float = 0.0
    TOKEN_REQUEST_TIMEOUT: float = 1.0


class ProductionConfig(Config):
    """Real load runs: keep the log stream to warnings and above."""

    LOG_LEVEL: str = os.environ.get("PERFKIT_LOG_LEVEL", "WARNING")


# Lookup table mapping environment name strings to their config classes.
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": Config,
}


def get_config(env: str | None = None) -> type[Config]:
    """
    Return the configuration class for the given environment.

    Args:
        env: One of ``"development"``, ``"testing"``, or
            ``"production"``.  When *None*, the ``PERFKIT_ENV``
            environment variable is consulted.

    Returns:
        The ``Config`` subclass matching the requested environment,
        or the base ``Config`` if the key is unrecognised.
    """
    if env is None:
        env = os.environ.get("PERFKIT_ENV", "default")
    return config.get(env, config["default"])


@dataclass(frozen=True)
class TokenConfig:
    """
    How to obtain an auth token.

    Attributes:
        url: Token endpoint.
        username: Credential sent in the default request body.
        password: Credential sent in the default request body.
        lifetime_seconds: How long an issued token stays valid.
        method: HTTP method for the token request.
        body_template: JSON body to send instead of the credential pair.
        token_path: Dot path to the token inside the JSON response.
        headers: Extra request headers merged over ``Content-Type``.
        timeout: Request timeout in seconds.
    """

    url: str
    username: str
    password: str
    lifetime_seconds: float = 600
    method: str = "POST"
    body_template: dict[str, Any] | None = None
    token_path: str = "access_token"
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float = field(default_factory=lambda: get_config().TOKEN_REQUEST_TIMEOUT)

    def __post_init__(self) -> None:
        if not self.url:
            raise ConfigError("Token URL is required")
        if not self.username or not self.password:
            raise ConfigError("Username and password are required")
        if self.lifetime_seconds <= 0:
            raise ConfigError("Token lifetime must be positive")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> TokenConfig:
        """
        Build a config from a plain mapping, rejecting unknown keys.

        Raises:
            ConfigError: If a required field is missing or a key is unknown.
        """
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown token config keys: {', '.join(unknown)}")
        try:
            return cls(**data)
        except TypeError as exc:
            raise ConfigError(f"Invalid token config: {exc}") from exc

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable copy of the config."""
        return asdict(self)


def load_token_config(path: Path | str) -> TokenConfig:
    """
    Read a :class:`TokenConfig` from a YAML file.

    The file may hold the settings at the top level or under a ``token``
    key.

    Raises:
        ConfigError: If the file is missing, not valid YAML, or does not
            describe a valid token config.
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigError(f"Cannot read token config {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Token config {path} is not valid YAML: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Token config {path} must be a mapping")
    if isinstance(data.get("token"), dict):
        data = data["token"]
    return TokenConfig.from_mapping(data)
