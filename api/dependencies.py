import os
import logging
import time
import threading
from typing import Optional, Set
from fastapi import Depends, HTTPException, Header
from supabase import create_client, Client

from api.utils import mask_email, mask_key
from services.account_sync import AccountSyncInvoker, ConfigurationError, SyncSettings
from services.admin_role import AdminRole, fetch_admin_role

logger = logging.getLogger("auth-sync.dependencies")

__all__ = [
    "get_supabase_anon_client",
    "get_supabase_service_role_client",
    "get_supabase_service",             # Alias para service role
    "get_user_scoped_client",
    "get_account_sync_invoker",
    "get_admin_emails",
    "get_current_admin_role",
    "require_admin",
    "require_admin_access",
    "shutdown_clients",
    "reset_caches_for_testing",
]

# Cache de clientes e locks para thread-safety
_admin_emails_cache: Optional[Set[str]] = None
_cached_anon_client: Optional[Client] = None
_cached_service_client: Optional[Client] = None
_cached_invoker: Optional[AccountSyncInvoker] = None

_client_initialization_lock = threading.Lock()
_admin_emails_initialization_lock = threading.Lock()
_invoker_initialization_lock = threading.Lock()

# Heurísticas simples de sanidade (ajustáveis conforme formato das keys)
MIN_SERVICE_KEY_LENGTH = 30
MIN_ANON_KEY_LENGTH = 30


def get_admin_emails() -> Set[str]:
    """
    Thread-safe getter for the ADMIN_EMAILS allow-list.
    Uses double-checked locking.
    """
    global _admin_emails_cache
    if _admin_emails_cache is None:
        with _admin_emails_initialization_lock:
            if _admin_emails_cache is None:  # Double-check
                raw = os.getenv("ADMIN_EMAILS", "")
                _admin_emails_cache = {e.strip().lower() for e in raw.split(",") if e.strip()}
                logger.info("Admin email cache initialized (%d)", len(_admin_emails_cache))
    return _admin_emails_cache


def shutdown_clients():
    """Close the cached invoker's HTTP client. Called from the app lifespan."""
    global _cached_invoker
    with _invoker_initialization_lock:
        if _cached_invoker is not None:
            _cached_invoker.close()
        _cached_invoker = None


def reset_caches_for_testing():
    """
    Reset global caches between tests.
    NOT for production code.
    """
    global _admin_emails_cache, _cached_anon_client, _cached_service_client
    _admin_emails_cache = None
    _cached_anon_client = None
    _cached_service_client = None
    shutdown_clients()


def _read_key(var_name: str, min_length: int) -> str:
    url = os.getenv("SUPABASE_URL")
    key = os.getenv(var_name, "").strip()

    if not url or not key:
        logger.error("SUPABASE_URL or %s missing.", var_name)
        raise HTTPException(status_code=500, detail=f"Incomplete Supabase configuration ({var_name}).")

    if len(key) < min_length:
        logger.error("%s invalid/truncated (len=%d).", var_name, len(key))
        raise HTTPException(status_code=500, detail=f"{var_name} invalid or truncated.")
    return key


def get_supabase_anon_client() -> Client:
    """
    ANON client (RLS enforced). Used for user-context operations such as auth.get_user.
    Thread-safe with double-checked locking.
    """
    global _cached_anon_client
    if _cached_anon_client is None:
        with _client_initialization_lock:
            if _cached_anon_client is None:  # Double-check
                anon_key = _read_key("SUPABASE_ANON_KEY", MIN_ANON_KEY_LENGTH)
                logger.info("Initializing ANON client key=%s", mask_key(anon_key))
                _cached_anon_client = create_client(os.getenv("SUPABASE_URL"), anon_key)
    return _cached_anon_client


def get_supabase_service_role_client() -> Client:
    """
    SERVICE ROLE client (bypasses RLS). Used for the read-only `users` queries
    behind /api/admin. Never use it for auth.get_user.
    Thread-safe with double-checked locking.
    """
    global _cached_service_client
    if _cached_service_client is None:
        with _client_initialization_lock:
            if _cached_service_client is None:  # Double-check
                service_key = _read_key("SUPABASE_SERVICE_KEY", MIN_SERVICE_KEY_LENGTH)
                logger.info("Initializing SERVICE client key=%s", mask_key(service_key))
                _cached_service_client = create_client(os.getenv("SUPABASE_URL"), service_key)
    return _cached_service_client


# Alias semântico para código admin existente
get_supabase_service = get_supabase_service_role_client


def get_user_scoped_client(token: str) -> Client:
    """
    Fresh ANON client whose PostgREST calls carry the user's JWT, so RPCs such
    as get_admin_role resolve against that user. Not cached.
    """
    anon_key = _read_key("SUPABASE_ANON_KEY", MIN_ANON_KEY_LENGTH)
    client = create_client(os.getenv("SUPABASE_URL"), anon_key)
    client.postgrest.auth(token)
    return client


def get_account_sync_invoker() -> AccountSyncInvoker:
    """Cached invoker built from the environment."""
    global _cached_invoker
    if _cached_invoker is None:
        with _invoker_initialization_lock:
            if _cached_invoker is None:  # Double-check
                try:
                    settings = SyncSettings.from_env()
                except ConfigurationError as e:
                    raise HTTPException(status_code=500, detail=str(e))
                logger.info("Initializing account sync invoker function=%s", settings.function_name)
                _cached_invoker = AccountSyncInvoker(settings)
    return _cached_invoker


def _extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        logger.warning("Authorization missing/malformed")
        raise HTTPException(status_code=401, detail="Missing or invalid authorization token")

    token = authorization.split(" ", 1)[1].strip()
    if not token:
        logger.warning("Empty token")
        raise HTTPException(status_code=401, detail="Empty token")
    return token


async def get_current_admin_role(
    authorization: str = Header(None),
) -> AdminRole:
    """
    Resolve the admin role of the Bearer token's user.

    Steps:
      1. Check the Authorization header format.
      2. Validate the token with Supabase auth.get_user(token).
      3. ADMIN_EMAILS or user_metadata.role == admin short-circuit to admin.
      4. Otherwise ask the get_admin_role RPC as that user.
    """
    start_time = time.monotonic()
    token = _extract_bearer_token(authorization)
    logger.debug("Admin role check start (token length=%d)", len(token))

    supabase_anon = get_supabase_anon_client()

    try:
        user_resp = supabase_anon.auth.get_user(token)
        user = getattr(user_resp, "user", None)
        if not user:
            logger.warning("No user in auth response")
            raise HTTPException(status_code=401, detail="Invalid or expired token")
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Supabase auth failure: %s", str(e)[:200])
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    email = getattr(user, "email", None)
    if not email:
        logger.warning("User without email")
        raise HTTPException(status_code=401, detail="Token has no valid email")

    admin_emails = get_admin_emails()
    user_metadata = getattr(user, "user_metadata", {}) or {}
    metadata_role = user_metadata.get("role", "").lower() if isinstance(user_metadata, dict) else ""

    if email.lower() in admin_emails or metadata_role == "admin":
        role = AdminRole.ADMIN
    else:
        role = fetch_admin_role(get_user_scoped_client(token))

    duration_ms = (time.monotonic() - start_time) * 1000
    logger.info("Admin role resolved: email=%s role=%s duration=%.2fms", mask_email(email), role.value, duration_ms)
    return role


async def require_admin(role: AdminRole = Depends(get_current_admin_role)) -> AdminRole:
    if not role.is_admin:
        raise HTTPException(status_code=403, detail="Access denied.")
    return role


async def require_admin_access(role: AdminRole = Depends(get_current_admin_role)) -> AdminRole:
    """Admin or view-only."""
    if not role.has_admin_access:
        raise HTTPException(status_code=403, detail="Access denied.")
    return role
