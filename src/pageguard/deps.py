"""Dependency injection singletons for PageGuard."""

from pageguard.common.config import get_settings
from pageguard.common.database import DatabaseManager
from pageguard.access_log.service import AccessLogService
from pageguard.documents.cache import DocumentCache
from pageguard.documents.registry import DocumentRegistry
from pageguard.nonces.service import NonceService
from pageguard.ratelimit.limiter import InMemoryRateLimiter, RateLimitConfig
from pageguard.viewer.service import ViewerService

_db: DatabaseManager | None = None
_rate_limiter: InMemoryRateLimiter | None = None
_nonces: NonceService | None = None
_access_log: AccessLogService | None = None
_registry: DocumentRegistry | None = None
_cache: DocumentCache | None = None
_viewer: ViewerService | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_rate_limiter() -> InMemoryRateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        settings = get_settings()
        _rate_limiter = InMemoryRateLimiter(
            RateLimitConfig(settings.rate_limit_max, settings.rate_limit_window_ms)
        )
    return _rate_limiter


def get_nonce_service() -> NonceService:
    global _nonces
    if _nonces is None:
        _nonces = NonceService()
    return _nonces


def get_access_log_service() -> AccessLogService:
    global _access_log
    if _access_log is None:
        _access_log = AccessLogService()
    return _access_log


def get_registry() -> DocumentRegistry:
    global _registry
    if _registry is None:
        _registry = DocumentRegistry()
    return _registry


def get_document_cache() -> DocumentCache:
    global _cache
    if _cache is None:
        settings = get_settings()
        _cache = DocumentCache(
            max_entries=settings.cache_max_entries,
            ttl_seconds=settings.cache_ttl_seconds,
        )
    return _cache


def get_viewer_service() -> ViewerService:
    global _viewer
    if _viewer is None:
        _viewer = ViewerService(
            get_settings(),
            get_db(),
            get_rate_limiter(),
            nonce_service=get_nonce_service(),
            access_log=get_access_log_service(),
            registry=get_registry(),
            cache=get_document_cache(),
        )
    return _viewer


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _rate_limiter, _nonces, _access_log, _registry, _cache, _viewer
    _db = None
    _rate_limiter = None
    _nonces = None
    _access_log = None
    _registry = None
    _cache = None
    _viewer = None
