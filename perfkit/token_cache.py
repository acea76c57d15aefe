"""
Auth token cache with refresh-before-expiry.

A load test usually authenticates once and then reuses the token for
thousands of requests.  :class:`TokenCache` does the authentication in
the script's setup phase, hands out the cached token, and regenerates
it once 80 % of its lifetime has elapsed.

Locust runs every worker as a separate process, so nothing is shared
between them.  :meth:`TokenCache.initialize` therefore returns a plain
snapshot that the script passes to each worker; the first
:meth:`TokenCache.get_token` call in a worker adopts it.  After that each
worker refreshes on its own.  Inside one worker process all users share
the cache and a non-blocking lock keeps them from refreshing at the same
time; across workers redundant refreshes are accepted since each one
simply yields another valid token.

Usage::

    cache = TokenCache()

    @events.test_start.add_listener
    def _auth(environment, **_kwargs):
        environment.token_snapshot = cache.initialize(token_config)

    class ApiUser(HttpUser):
        @task
        def call(self):
            token = cache.get_token(self.environment.token_snapshot)
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

import requests

from perfkit import jsonpath
from perfkit.config import TokenConfig, get_config
from perfkit.errors import ConfigError, GenerationFailure, InitializationError
from perfkit.responses import body_preview, decode_json, status_of

logger = logging.getLogger(__name__)

_SUCCESS_STATUSES = (200, 201)


@dataclass(frozen=True)
class TokenState:
    """A token and the window in which it is valid."""

    token: str
    generated_at: float
    expires_at: float

    @classmethod
    def issued(cls, token: str, now: float, lifetime_seconds: float) -> TokenState:
        return cls(token=token, generated_at=now, expires_at=now + lifetime_seconds)


def _iso(timestamp: float | None) -> str | None:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class TokenCache:
    """
    Per-process token cache.

    Args:
        session: HTTP session used for token requests.  A fresh
            ``requests.Session`` is created when omitted.
        clock: Returns the current time in seconds.
        sleep: Cooperative pause used while another caller refreshes.
        refresh_ratio: Fraction of the lifetime after which a refresh is
            attempted.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        refresh_ratio: float | None = None,
        refresh_wait: float | None = None,
    ):
        settings = get_config()
        self._session = session or requests.Session()
        self._clock = clock
        self._sleep = sleep
        self._refresh_ratio = settings.TOKEN_REFRESH_RATIO if refresh_ratio is None else refresh_ratio
        self._refresh_wait = (
            settings.TOKEN_REFRESH_WAIT_SECONDS if refresh_wait is None else refresh_wait
        )
        self._refresh_lock = threading.Lock()
        self._config: TokenConfig | None = None
        self._state: TokenState | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, config: TokenConfig | Mapping[str, Any]) -> dict[str, Any]:
        """
        Store *config* and generate the first token.

        Args:
            config: A :class:`TokenConfig` or a mapping accepted by
                :meth:`TokenConfig.from_mapping`.

        Returns:
            A JSON-serialisable snapshot to pass to every worker.

        Raises:
            ConfigError: If the endpoint or credentials are missing.
            InitializationError: If the first token request fails.
        """
        if not isinstance(config, TokenConfig):
            config = TokenConfig.from_mapping(config)

        logger.info("[TOKEN] Initializing token cache for %s", config.url)
        self._config = config
        self._state = None

        try:
            self._generate()
        except GenerationFailure as exc:
            raise InitializationError(f"Failed to generate initial token: {exc}") from exc

        logger.info(
            "[TOKEN] Initial token generated (expires in %ss)", config.lifetime_seconds
        )
        return self.snapshot()

    def snapshot(self) -> dict[str, Any]:
        """Return the current state as a plain dict."""
        if self._config is None:
            raise InitializationError("Token cache not initialized")
        state = self._state
        return {
            "token": state.token if state else None,
            "generated_at": state.generated_at if state else None,
            "expires_at": state.expires_at if state else None,
            "config": self._config.to_dict(),
        }

    def _adopt(self, snapshot: Mapping[str, Any]) -> None:
        try:
            config = TokenConfig.from_mapping(snapshot["config"])
        except (KeyError, TypeError, ConfigError) as exc:
            raise InitializationError(f"Invalid token snapshot: {exc}") from exc

        self._config = config
        if snapshot.get("token") and snapshot.get("generated_at") is not None:
            self._state = TokenState.issued(
                snapshot["token"], float(snapshot["generated_at"]), config.lifetime_seconds
            )
        logger.debug("[TOKEN] Adopted token snapshot from setup")

    # ------------------------------------------------------------------
    # Token access
    # ------------------------------------------------------------------

    def get_token(self, snapshot: Mapping[str, Any] | None = None) -> str | None:
        """
        Return a usable token, refreshing it when it is close to expiry.

        A failed refresh never fails the caller: the stale token is
        returned and a warning is logged.

        Args:
            snapshot: The value returned by :meth:`initialize`.  Only used
                when this process has no state of its own yet.

        Raises:
            InitializationError: If the cache was never initialized and no
                snapshot was supplied.
        """
        if self._config is None and snapshot:
            self._adopt(snapshot)
        if self._config is None:
            raise InitializationError(
                "Token cache not initialized. Call initialize() during test start"
            )

        stale = self._state.token if self._state else None
        if not self._needs_refresh():
            return stale

        if not self._refresh_lock.acquire(blocking=False):
            # Another user in this process is refreshing right now.
            self._sleep(self._refresh_wait)
            return self._state.token if self._state else stale

        try:
            logger.info("[TOKEN] Token approaching expiry, refreshing")
            try:
                return self._generate()
            except GenerationFailure as exc:
                logger.warning("[TOKEN] Refresh failed, using existing token: %s", exc)
                return stale
        finally:
            self._refresh_lock.release()

    def force_refresh(self) -> str | None:
        """Regenerate the token now; return it, or ``None`` on failure."""
        if self._config is None:
            raise InitializationError("Token cache not initialized")
        logger.info("[TOKEN] Force refresh requested")
        try:
            return self._generate()
        except GenerationFailure as exc:
            logger.warning("[TOKEN] Forced refresh failed: %s", exc)
            return None

    def _needs_refresh(self) -> bool:
        if self._state is None:
            return True
        lifetime = self._state.expires_at - self._state.generated_at
        threshold = self._state.generated_at + lifetime * self._refresh_ratio
        return self._clock() >= threshold

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _generate(self) -> str:
        """
        Request a new token and replace the cached state.

        Raises:
            GenerationFailure: On transport errors, a status other than
                200/201, an undecodable body, or a missing token field.
            InitializationError: If no config has been set.
        """
        config = self._config
        if config is None:
            raise InitializationError("Token cache not initialized")

        logger.info("[TOKEN] Generating new token from %s", config.url)
        body = config.body_template or {
            "username": config.username,
            "password": config.password,
        }
        headers = {"Content-Type": "application/json", **config.headers}

        try:
            response = self._session.request(
                config.method,
                config.url,
                json=body,
                headers=headers,
                timeout=config.timeout,
            )
        except requests.RequestException as exc:
            logger.error("[TOKEN] Generation request failed: %s", exc)
            raise GenerationFailure(f"request error: {exc}") from exc

        status = status_of(response)
        if status not in _SUCCESS_STATUSES:
            logger.error(
                "[TOKEN] Generation failed - Status: %s, Body: %s",
                status,
                body_preview(response),
            )
            raise GenerationFailure(f"unexpected status {status}")

        try:
            payload = decode_json(response)
        except ValueError as exc:
            logger.error("[TOKEN] Error parsing token response: %s", exc)
            raise GenerationFailure("response is not JSON") from exc

        token = jsonpath.resolve(payload, config.token_path)
        if not token:
            logger.error(
                "[TOKEN] Token not found at '%s' - Body: %s",
                config.token_path,
                body_preview(response),
            )
            raise GenerationFailure(f"no token at {config.token_path!r}")

        self._state = TokenState.issued(str(token), self._clock(), config.lifetime_seconds)
        logger.info("[TOKEN] New token generated (valid until %s)", _iso(self._state.expires_at))
        return self._state.token

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def is_valid(self) -> bool:
        """Return ``True`` while a token exists and has not expired."""
        return self._state is not None and self._clock() < self._state.expires_at

    def ttl_seconds(self) -> float:
        """Return the seconds left before the token expires (never negative)."""
        if self._state is None:
            return 0.0
        return max(0.0, self._state.expires_at - self._clock())

    def stats(self) -> dict[str, Any]:
        """Summarise the cache for logging or a run report."""
        state = self._state
        return {
            "has_token": state is not None,
            "is_valid": self.is_valid(),
            "ttl_seconds": int(self.ttl_seconds()),
            "generated_at": _iso(state.generated_at if state else None),
            "expires_at": _iso(state.expires_at if state else None),
        }
