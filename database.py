"""
Supabase access for the donor directory.

The client is created lazily from SUPABASE_URL / SUPABASE_KEY. When either is
missing the app keeps running on demo data; callers go through
safe_operation() and get a (data, error) pair instead of an exception.
"""

import os
import logging
from typing import Any, Callable, Optional, Tuple

from supabase import Client, create_client

logger = logging.getLogger(__name__)

DONOR_TABLE = os.getenv("SUPABASE_DONOR_TABLE", "donors")

ENV_EXAMPLE = (
    "SUPABASE_URL=https://your-project.supabase.co\n"
    "SUPABASE_KEY=your_supabase_anon_key"
)

_client: Optional[Client] = None
_warned_unconfigured = False


class NotConfiguredError(RuntimeError):
    pass


def supabase_url() -> Optional[str]:
    return os.getenv("SUPABASE_URL") or os.getenv("VITE_SUPABASE_URL")


def supabase_key() -> Optional[str]:
    return os.getenv("SUPABASE_KEY") or os.getenv("VITE_SUPABASE_KEY")


def is_configured() -> bool:
    return bool(supabase_url() and supabase_key())


def get_client() -> Client:
    global _client
    if _client is None:
        if not is_configured():
            raise NotConfiguredError("Supabase not configured")
        _client = create_client(supabase_url(), supabase_key())
        logger.info("Supabase client created for %s", supabase_url())
    return _client


def _warn_unconfigured():
    global _warned_unconfigured
    if not _warned_unconfigured:
        logger.warning(
            "Supabase environment variables are not set. Add them to your environment, e.g.\n%s",
            ENV_EXAMPLE,
        )
        _warned_unconfigured = True


def safe_operation(operation: Callable[[Client], Any]) -> Tuple[Any, Optional[Exception]]:
    """Run ``operation(client)`` and normalize the outcome to ``(data, error)``.

    ``operation`` must return a postgrest response (anything with ``.data``).
    """
    if not is_configured():
        _warn_unconfigured()
        logger.warning("Supabase not configured, returning fallback data")
        return None, NotConfiguredError("Supabase not configured")

    try:
        response = operation(get_client())
    except Exception as e:
        logger.error("Supabase operation failed: %s", e)
        return None, e
    return response.data, None
