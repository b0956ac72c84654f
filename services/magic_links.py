"""
Magic-link sign-in check.

Sends an OTP email with should_create_user=False: Supabase only accepts it
when an auth identity already exists, so a successful send confirms that
the user can log in.
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional

from supabase import Client

from api.utils import mask_email

logger = logging.getLogger("auth-sync.magic_links")


@dataclass
class MagicLinkResult:
    email: str
    success: bool
    error: Optional[str] = None


def send_magic_link(client: Client, email: str, redirect_to: Optional[str] = None) -> MagicLinkResult:
    """
    Send a sign-in link without creating a user.

    Failures are captured in the result so one bad address does not stop a
    batch of checks.
    """
    redirect_to = redirect_to or os.getenv("MAGIC_LINK_REDIRECT_URL")
    options = {"should_create_user": False}
    if redirect_to:
        options["email_redirect_to"] = redirect_to

    try:
        client.auth.sign_in_with_otp({"email": email, "options": options})
    except Exception as e:
        logger.warning("Magic link failed for %s: %s", mask_email(email), e)
        return MagicLinkResult(email=email, success=False, error=str(e))

    logger.info("Magic link sent to %s", mask_email(email))
    return MagicLinkResult(email=email, success=True)


__all__ = ["MagicLinkResult", "send_magic_link"]
