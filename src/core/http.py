"""Async HTTP helper built on httpx.

Every outbound JSON call goes through ``request`` so that providers share
the same error shape and timeout handling.
"""

from __future__ import annotations

import httpx


class HTTPRequestError(Exception):
    """Non-2xx response or transport failure."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


async def request(
    method: str,
    url: str,
    headers: dict | None = None,
    params: dict | None = None,
    json_data: dict | None = None,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict:
    """Make an HTTP request and return the parsed JSON body.

    Args:
        method: HTTP method (GET, POST, PUT, DELETE, etc.)
        url: Full URL to request
        headers: Optional headers dict
        params: Optional query parameters
        json_data: Optional JSON body
        timeout: Request timeout in seconds
        transport: Optional transport override (used by tests)

    Returns:
        Parsed JSON response as dict

    Raises:
        HTTPRequestError: On HTTP errors, network failures or a non-JSON body
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json_data,
            )
    except httpx.TimeoutException as e:
        raise HTTPRequestError(f"Timeout after {timeout}s: {url}") from e
    except httpx.HTTPError as e:
        raise HTTPRequestError(f"Transport error: {e}") from e

    if response.is_error:
        raise HTTPRequestError(f"HTTP {response.status_code}: {response.text}", response.status_code)

    # Handle empty responses
    if response.status_code == 204 or not response.content:
        return {}

    try:
        return response.json()
    except ValueError as e:
        raise HTTPRequestError(f"Invalid JSON from {url}: {response.text[:200]}", response.status_code) from e


async def post(
    url: str,
    headers: dict | None = None,
    json_data: dict | None = None,
    timeout: float = 30.0,
) -> dict:
    """Make a POST request."""
    return await request("POST", url, headers=headers, json_data=json_data, timeout=timeout)
