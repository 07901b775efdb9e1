"""
HTTP clients for the services the order service calls synchronously:
the catalog (product snapshots for the cart) and the auth service (token validation).
"""

from __future__ import annotations

import logging

import httpx

from common.errors import APIError, AuthorizeError, NotFoundError
from common.models import Product, User
from order_service.config import AUTH_SERVICE_BASE_URL, CATALOG_BASE_URL, HTTP_TIMEOUT_MS

logger = logging.getLogger(__name__)


class _ServiceClient:
    def __init__(
        self,
        base_url: str,
        timeout_ms: int = HTTP_TIMEOUT_MS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout_ms / 1000.0
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout, transport=self._transport)


class CatalogClient(_ServiceClient):
    def __init__(self, base_url: str = CATALOG_BASE_URL, **kwargs) -> None:
        super().__init__(base_url, **kwargs)

    async def get_product(self, product_id: int) -> Product:
        async with self._client() as client:
            try:
                resp = await client.get(f"/products/{product_id}")
            except (httpx.TimeoutException, httpx.RequestError) as e:
                logger.warning("Catalog request for product %s failed: %s", product_id, e)
                raise APIError("catalog service unavailable") from e

        if resp.status_code == 404:
            raise NotFoundError("product not found")
        if resp.status_code != 200:
            logger.warning("Catalog returned %s for product %s", resp.status_code, product_id)
            raise APIError("product not found")
        return Product.model_validate(resp.json())


class AuthClient(_ServiceClient):
    def __init__(self, base_url: str = AUTH_SERVICE_BASE_URL, **kwargs) -> None:
        super().__init__(base_url, **kwargs)

    async def validate(self, token: str) -> User:
        """Resolve a bearer token to a user; any failure is an AuthorizeError."""
        async with self._client() as client:
            try:
                resp = await client.get("/auth/validate", headers={"Authorization": token})
            except (httpx.TimeoutException, httpx.RequestError) as e:
                logger.warning("Auth service request failed: %s", e)
                raise AuthorizeError("user not authorised") from e

        if resp.status_code != 200:
            raise AuthorizeError("user not authorised")
        return User.model_validate(resp.json())
