# Overview: Read-only catalog lookups used to decorate transaction detail.

"""
Catalog Client

WHY: Receipts and transaction detail screens want product names, but the
ledger only stores product ids. The catalog lives in another service.

RULES:
- Lookups are display enrichment only. A timeout, connection error or
  non-2xx response is logged and treated as "no data"; it never fails a
  ledger operation.
- No base URL configured means the client is disabled (every lookup
  returns nothing, no network I/O).
"""

from __future__ import annotations

import logging

import httpx


class CatalogClient:
    def __init__(
        self,
        base_url: str | None,
        *,
        timeout: float = 2.0,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self._transport = transport
        self._logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config, *, logger: logging.Logger | None = None) -> "CatalogClient":
        return cls(
            config.get("CATALOG_BASE_URL"),
            timeout=float(config.get("CATALOG_TIMEOUT_SECONDS", 2.0)),
            logger=logger,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    def get_product(self, product_id: int) -> dict | None:
        """Fetch one product, or None when unavailable."""
        if not self.enabled:
            return None
        try:
            with self._client() as client:
                response = client.get(f"/products/{product_id}")
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError):
            self._logger.warning("Catalog lookup failed for product %s", product_id, exc_info=True)
            return None

    def get_products(self, product_ids) -> dict[int, dict]:
        """
        Fetch several products in one request.

        Returns {product_id: product}; ids the catalog does not know are absent.
        """
        ids = sorted({int(p) for p in product_ids})
        if not self.enabled or not ids:
            return {}
        try:
            with self._client() as client:
                response = client.get("/products", params={"ids": ",".join(str(i) for i in ids)})
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError):
            self._logger.warning("Catalog lookup failed for products %s", ids, exc_info=True)
            return {}

        items = payload.get("items", []) if isinstance(payload, dict) else payload
        out = {}
        for item in items or []:
            if isinstance(item, dict) and item.get("id") is not None:
                out[int(item["id"])] = item
        return out
