"""
Account-Sync Invoker: client for the "ensure auth accounts exist" edge function.

The edge function reads the `users` table, creates a Supabase Auth identity
for every record that lacks one (or only for `single_email`), writes the new
`auth_user_id` back and returns one outcome per targeted user.

Calling it is idempotent. A user whose identity already exists is reported
with an "already exists"/"linked" action instead of being created again, so
operators may re-run a sync as many times as they like; at most one
authentication identity ever exists per user record.

Nothing is retried here. Transport and decode failures are raised with full
diagnostic detail; per-user failures come back inline in the result.
"""
import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError
from supabase import Client
from supabase_functions.errors import FunctionsError

from api.schemas.account_sync import (
    ActionKind,
    ReconciliationRequest,
    ReconciliationResult,
)
from api.utils import mask_email, mask_key

logger = logging.getLogger("auth-sync.account_sync")

DEFAULT_FUNCTION_NAME = "create-auth-users"
DEFAULT_TIMEOUT_SECONDS = 60.0

# Loose sanity check; legacy JWT keys are far longer, publishable keys ~40.
MIN_KEY_LENGTH = 30


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------
class AccountSyncError(Exception):
    """Base class for invoker failures."""


class ConfigurationError(AccountSyncError):
    """Missing or malformed settings."""


class TransportError(AccountSyncError):
    """The call did not produce a usable 2xx response."""

    def __init__(self, message: str, status_code: Optional[int] = None, body_text: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body_text = body_text


class RemoteFunctionError(TransportError):
    """Non-2xx response whose body is still valid JSON."""

    def __init__(self, status_code: int, payload: Any, body_text: str):
        message = f"Edge function returned HTTP {status_code}"
        if isinstance(payload, dict):
            reason = payload.get("error") or payload.get("message")
            if reason:
                message = f"{message}: {reason}"
        super().__init__(message, status_code=status_code, body_text=body_text)
        self.payload = payload


class DecodeError(AccountSyncError):
    """A 2xx response whose body is not a reconciliation result."""

    def __init__(self, message: str, raw_text: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.raw_text = raw_text
        self.status_code = status_code


# ----------------------------------------------------------------------
# Settings
# ----------------------------------------------------------------------
def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class SyncSettings:
    supabase_url: str
    api_key: str
    function_name: str = DEFAULT_FUNCTION_NAME
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    @property
    def function_url(self) -> str:
        return f"{self.supabase_url.rstrip('/')}/functions/v1/{self.function_name}"

    @classmethod
    def from_env(cls, use_service_key: Optional[bool] = None) -> "SyncSettings":
        """
        Build settings from the process environment.

        The elevated key is used when `use_service_key` is True, or when it is
        None and AUTH_SYNC_USE_SERVICE_KEY is set.
        """
        url = os.getenv("SUPABASE_URL", "").strip()
        if use_service_key is None:
            use_service_key = _env_flag("AUTH_SYNC_USE_SERVICE_KEY")
        key_var = "SUPABASE_SERVICE_KEY" if use_service_key else "SUPABASE_ANON_KEY"
        key = os.getenv(key_var, "").strip()

        if not url or not key:
            logger.error("SUPABASE_URL or %s missing.", key_var)
            raise ConfigurationError(f"SUPABASE_URL and {key_var} must be set")
        if len(key) < MIN_KEY_LENGTH:
            logger.error("%s invalid/truncated (len=%d).", key_var, len(key))
            raise ConfigurationError(f"{key_var} looks invalid or truncated")

        raw_timeout = os.getenv("AUTH_SYNC_TIMEOUT", str(DEFAULT_TIMEOUT_SECONDS))
        try:
            timeout = float(raw_timeout)
        except ValueError:
            raise ConfigurationError(f"AUTH_SYNC_TIMEOUT must be a number, got {raw_timeout!r}")

        return cls(
            supabase_url=url,
            api_key=key,
            function_name=os.getenv("AUTH_SYNC_FUNCTION", DEFAULT_FUNCTION_NAME).strip() or DEFAULT_FUNCTION_NAME,
            timeout=timeout,
        )


# ----------------------------------------------------------------------
# Response parsing
# ----------------------------------------------------------------------
def parse_function_response(status_code: int, body_text: str) -> ReconciliationResult:
    """
    Turn a raw edge function response into a result or raise.

    Non-2xx bodies are never discarded: a JSON body becomes a
    RemoteFunctionError with the decoded payload, anything else a
    TransportError with the raw text.
    """
    try:
        payload = json.loads(body_text) if body_text else None
        decoded = body_text != ""
    except ValueError:
        payload = None
        decoded = False

    if not 200 <= status_code < 300:
        if decoded:
            raise RemoteFunctionError(status_code, payload, body_text)
        raise TransportError(
            f"Edge function returned HTTP {status_code} with a non-JSON body",
            status_code=status_code,
            body_text=body_text,
        )

    if not decoded:
        raise DecodeError("Edge function response is not valid JSON", body_text, status_code)
    if not isinstance(payload, dict) or "processed" not in payload:
        raise DecodeError("Edge function response is not a reconciliation result", body_text, status_code)

    try:
        return ReconciliationResult.model_validate(payload)
    except ValidationError as e:
        raise DecodeError(f"Edge function response has unexpected fields: {e}", body_text, status_code) from e


# ----------------------------------------------------------------------
# Invoker
# ----------------------------------------------------------------------
class AccountSyncInvoker:
    """
    Stateless request/response wrapper around the edge function.

    Safe to call repeatedly with the same scope; see module docstring.
    """

    def __init__(self, settings: SyncSettings, http_client: Optional[httpx.Client] = None):
        self.settings = settings
        self._owns_client = http_client is None
        self._http = http_client or httpx.Client(timeout=settings.timeout)

    @classmethod
    def from_env(cls, use_service_key: Optional[bool] = None) -> "AccountSyncInvoker":
        return cls(SyncSettings.from_env(use_service_key=use_service_key))

    def __enter__(self) -> "AccountSyncInvoker":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._http.close()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.api_key}",
            "apikey": self.settings.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def sync(self, single_email: Optional[str] = None) -> ReconciliationResult:
        """
        Ask the edge function to reconcile auth accounts.

        Args:
            single_email: Process exactly this user; None processes every
                user whose auth_user_id is still null.

        Returns:
            ReconciliationResult, possibly containing failed outcomes.

        Raises:
            ValueError: single_email is blank
            TransportError: network failure or non-2xx response
            DecodeError: 2xx response that is not a reconciliation result
        """
        request = ReconciliationRequest(single_email=single_email)
        scope = mask_email(request.single_email) if request.is_scoped else "all-pending"
        url = self.settings.function_url
        logger.info("Invoking %s scope=%s key=%s", self.settings.function_name, scope, mask_key(self.settings.api_key))

        start_time = time.monotonic()
        try:
            response = self._http.post(url, json=request.to_body(), headers=self._headers())
        except httpx.HTTPError as e:
            logger.error("Transport failure calling %s: %s", url, e)
            raise TransportError(f"Request to {url} failed: {e}") from e

        duration_ms = (time.monotonic() - start_time) * 1000
        logger.info("Edge function responded status=%d duration=%.2fms", response.status_code, duration_ms)

        result = self._parse(response.status_code, response.text)
        self._check_result(request, result)
        return result

    def sync_via_client(self, client: Client, single_email: Optional[str] = None) -> ReconciliationResult:
        """Same contract as `sync`, routed through `client.functions.invoke`."""
        request = ReconciliationRequest(single_email=single_email)
        scope = mask_email(request.single_email) if request.is_scoped else "all-pending"
        logger.info("Invoking %s via SDK scope=%s", self.settings.function_name, scope)

        try:
            raw = client.functions.invoke(
                self.settings.function_name,
                invoke_options={"body": request.to_body()},
            )
        except FunctionsError as e:
            status = getattr(e, "status", None)
            logger.error("SDK invoke of %s failed status=%s: %s", self.settings.function_name, status, e)
            # FunctionsHttpError keeps only the message; the full body is on the httpx cause.
            cause = e.__cause__
            if isinstance(cause, httpx.HTTPStatusError):
                self._parse(cause.response.status_code, cause.response.text)
            raise TransportError(str(e), status_code=status, body_text=getattr(e, "message", None)) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("SDK invoke of %s failed: %s", self.settings.function_name, e)
            raise TransportError(f"SDK invoke failed: {e}") from e

        if isinstance(raw, (bytes, bytearray)):
            body_text = raw.decode("utf-8", errors="replace")
        elif isinstance(raw, str):
            body_text = raw
        else:
            body_text = json.dumps(raw)

        result = self._parse(200, body_text)
        self._check_result(request, result)
        return result

    def _parse(self, status_code: int, body_text: str) -> ReconciliationResult:
        try:
            return parse_function_response(status_code, body_text)
        except RemoteFunctionError as e:
            logger.error("Edge function error status=%d payload=%s", e.status_code, e.payload)
            raise
        except TransportError as e:
            logger.error("Edge function error status=%s body=%s", e.status_code, (e.body_text or "")[:500])
            raise
        except DecodeError as e:
            logger.error("Undecodable edge function response: %s", e.raw_text[:500])
            raise

    def _check_result(self, request: ReconciliationRequest, result: ReconciliationResult) -> None:
        """Log contract anomalies. Never alters the result."""
        if result.requires_inspection:
            logger.warning(
                "Sync processed %d user(s) with zero successes; manual inspection required",
                result.processed,
            )
        elif result.errors:
            logger.warning("Sync finished with %d failed user(s) out of %d", result.errors, result.processed)

        if request.is_scoped:
            matching = [r for r in result.results if r.email.lower() == request.single_email.lower()]
            if len(matching) != 1 or len(result.results) != 1:
                logger.warning(
                    "Scoped sync for %s returned %d outcome(s), %d matching",
                    mask_email(request.single_email), len(result.results), len(matching),
                )
            return

        # Unscoped runs only select users with a null auth_user_id.
        for outcome in result.results:
            if outcome.success and outcome.kind is ActionKind.ALREADY_EXISTS:
                logger.warning(
                    "Unscoped sync reported existing identity for %s (action=%s); "
                    "the pending-user filter may be inconsistent",
                    mask_email(outcome.email), outcome.action,
                )


__all__ = [
    "AccountSyncError",
    "ConfigurationError",
    "TransportError",
    "RemoteFunctionError",
    "DecodeError",
    "SyncSettings",
    "AccountSyncInvoker",
    "parse_function_response",
]
