"""Request-level security dependencies."""

import hmac
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request


@dataclass(frozen=True)
class ClientInfo:
    """Who is asking: the rate-limit key and the watermark/log identity."""
    ip: str = "unknown"
    user_agent: Optional[str] = None


async def require_api_key(
    x_pageguard_api_key: str = Header(..., alias="X-PageGuard-Api-Key"),
) -> str:
    """FastAPI dependency that validates admin API key from header."""
    from pageguard.common.config import get_settings

    settings = get_settings()
    if not hmac.compare_digest(x_pageguard_api_key.encode(), settings.api_key.encode()):
        raise HTTPException(status_code=403, detail="Invalid API key")
    return x_pageguard_api_key


def extract_client_ip(request: Request, trust_proxy_headers: bool = True) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    if trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


async def resolve_client(request: Request) -> ClientInfo:
    """FastAPI dependency resolving the caller's IP and user agent."""
    from pageguard.common.config import get_settings

    settings = get_settings()
    return ClientInfo(
        ip=extract_client_ip(request, settings.trust_proxy_headers),
        user_agent=request.headers.get("user-agent"),
    )
