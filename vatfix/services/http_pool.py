"""
Shared HTTP client for outbound calls to VIES.

One AsyncClient is built at startup and handed to the lookup client, so
TCP/TLS connections are reused across lookups:
- Connection pooling with keep-alive
- Per-phase timeouts (the lookup client adds its own hard deadline on top)
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


def create_http_client(
    timeout_seconds: float = 8.0,
    user_agent: Optional[str] = None,
    max_connections: int = 50,
) -> httpx.AsyncClient:
    """Create a pooled AsyncClient tuned for short SOAP round trips."""
    limits = httpx.Limits(
        max_connections=max_connections,
        max_keepalive_connections=max_connections // 2,
        keepalive_expiry=30.0,  # VIES is called in bursts
    )

    timeout = httpx.Timeout(
        timeout=timeout_seconds,
        connect=min(timeout_seconds, 5.0),
        pool=5.0,
    )

    headers = {"User-Agent": user_agent} if user_agent else None

    client = httpx.AsyncClient(
        limits=limits,
        timeout=timeout,
        headers=headers,
        verify=True,
        follow_redirects=False,
    )

    logger.info(
        f"HTTP client initialized: max_connections={max_connections}, timeout={timeout_seconds}s"
    )
    return client
