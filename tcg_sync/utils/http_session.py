"""HTTP session factory with connection pooling for catalog requests"""

import ssl
from typing import Optional

import aiohttp
import certifi

from .logger import logger

USER_AGENT = "tcg-sync/1.0"

CONNECTOR_CONFIG = {
    "limit": 20,  # Total connection pool size
    "limit_per_host": 10,
    "ttl_dns_cache": 600,  # DNS cache TTL (10 minutes)
    "keepalive_timeout": 30,
}


def create_ssl_context() -> ssl.SSLContext:
    """Create SSL context backed by certifi's CA bundle"""
    context = ssl.create_default_context(cafile=certifi.where())
    context.options |= ssl.OP_NO_TLSv1 | ssl.OP_NO_TLSv1_1
    return context


def create_session(timeout: Optional[aiohttp.ClientTimeout] = None) -> aiohttp.ClientSession:
    """Create a pooled session; the caller owns it and must close it"""
    connector = aiohttp.TCPConnector(**CONNECTOR_CONFIG, ssl=create_ssl_context())

    session = aiohttp.ClientSession(
        connector=connector,
        timeout=timeout or aiohttp.ClientTimeout(total=60, connect=30, sock_read=60),
        headers={
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
        },
        raise_for_status=False,  # Handle status codes manually
        trust_env=True,
    )
    logger.debug("Created new HTTP session for the Pokemon TCG API")
    return session
