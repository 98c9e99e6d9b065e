"""
HTTP client helper with standardized timeout configuration.

Every outbound call (Graph API, Paystack) goes through create_httpx_client so a
slow provider cannot pin a worker.
"""

import httpx


def get_httpx_timeout() -> httpx.Timeout:
    return httpx.Timeout(
        10.0,  # Default for all operations
        connect=5.0,
        read=10.0,
        write=5.0,
        pool=5.0,
    )


def create_httpx_client(
    base_url: str = "",
    headers: dict[str, str] | None = None,
) -> httpx.AsyncClient:
    """httpx.AsyncClient with the standard timeouts; use as an async context manager."""
    return httpx.AsyncClient(base_url=base_url, headers=headers, timeout=get_httpx_timeout())
