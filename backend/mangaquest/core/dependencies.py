"""FastAPI dependencies shared by the route modules."""

from __future__ import annotations

import hmac

import structlog
from fastapi import HTTPException, Request, status

from mangaquest.core.config import get_settings
from mangaquest.core.mangadex.client import MangaDexClient
from mangaquest.core.matching import MatchingConfig

logger = structlog.get_logger("mangaquest.dependencies")

SECRET_HEADER = "X-Sync-Secret"


def get_mangadex_client() -> MangaDexClient:
    """Build a MangaDex client from current settings.

    Raises:
        ConfigurationError: If client identification is not configured
    """
    return MangaDexClient.from_settings(get_settings())


def get_matching_config() -> MatchingConfig:
    """Matching configuration from current settings."""
    return MatchingConfig.from_settings(get_settings())


def require_sync_secret(request: Request) -> bool:
    """Require the shared sync secret when one is configured.

    The secret may be passed as the ``secret`` query parameter (cron services)
    or the X-Sync-Secret header. Without a configured secret every caller is
    allowed.

    Raises:
        HTTPException: 401 if a secret is configured and the request doesn't match it
    """
    expected = get_settings().sync_secret
    if not expected:
        return True

    provided = request.query_params.get("secret") or request.headers.get(SECRET_HEADER) or ""
    if not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning("Invalid sync secret", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid sync secret",
        )
    return True
