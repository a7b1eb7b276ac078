import logging
from typing import Optional

import httpx

from bookcase.config import settings

logger = logging.getLogger(__name__)


class BookcaseHTTPClient:
    """HTTP client with connection pooling and bounded timeouts"""

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        limits = httpx.Limits(
            max_keepalive_connections=5,
            max_connections=10,
            keepalive_expiry=30.0
        )

        read_timeout = timeout if timeout is not None else settings.google_books_timeout
        self.timeout = httpx.Timeout(
            timeout=read_timeout,
            connect=min(5.0, read_timeout),
        )

        self._client = httpx.AsyncClient(
            limits=limits,
            timeout=self.timeout,
            follow_redirects=True,
            transport=transport,
            headers={"User-Agent": f"{settings.app_name}/1.0"},
        )

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def get(self, url: str, **kwargs) -> httpx.Response:
        """Asynchronous GET request sharing the connection pool"""
        return await self._client.get(url, **kwargs)

    async def close(self):
        """Close the underlying HTTP client"""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


# Global HTTP client instance
_global_client: Optional[BookcaseHTTPClient] = None


async def get_http_client() -> BookcaseHTTPClient:
    """Get or create the global HTTP client instance"""
    global _global_client
    if _global_client is None or _global_client.is_closed:
        _global_client = BookcaseHTTPClient()
    return _global_client


async def cleanup_http_client():
    """Close the global HTTP client"""
    global _global_client
    if _global_client:
        await _global_client.close()
        _global_client = None
