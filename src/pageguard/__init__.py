"""PageGuard: single-session, watermarked page delivery for sensitive documents."""

from pageguard.ratelimit.limiter import InMemoryRateLimiter, RateLimitConfig, RateLimitResult
from pageguard.watermark.compositor import WatermarkInfo, build_watermark_text, compose

__all__ = [
    "InMemoryRateLimiter",
    "RateLimitConfig",
    "RateLimitResult",
    "WatermarkInfo",
    "build_watermark_text",
    "compose",
]
__version__ = "0.1.0"
