"""HTTP client for the external product catalog API.

The catalog exposes paginated product listings filtered by category name.
It has no text search, so :meth:`CatalogClient.fetch_products` filters the
fetched page locally when a search term is given and reports the filtered
page as a single page of results.

Upstream response shape (``GET /products``)::

    {
        "data": [{"id": ..., "name": ..., "category": {"id": ..., "name": ...},
                  "price": ..., "availability": ..., "featuredImage": {"url": ...}}],
        "pagination": {"currentPage": 1, "perPage": 25, "total": 240, "lastPage": 10}
    }

Products are normalised to flat dictionaries (see :func:`normalize_product`)
so the API and the input-set store never depend on the upstream layout.
"""

from __future__ import annotations

import logging

import httpx

from studiolab.core.constants import PRODUCT_CATEGORIES

logger = logging.getLogger(__name__)

CATEGORY_PAGE_SIZE = 100


class CatalogError(Exception):
    """Raised when the catalog API is unreachable or answers with an error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def normalize_product(raw: dict) -> dict:
    """Flatten an upstream catalog product.

    Args:
        raw: Product object as returned by the catalog API

    Returns:
        Dictionary with ``id``, ``name``, ``category``, ``price``,
        ``availability``, ``image_url``, and the untouched ``raw`` payload
    """
    category = raw.get("category")
    if isinstance(category, dict):
        category_name = category.get("name") or ""
    else:
        category_name = category or ""

    featured = raw.get("featuredImage") or {}
    return {
        "id": str(raw.get("id", "")),
        "name": raw.get("name") or "",
        "category": category_name,
        "price": raw.get("price"),
        "availability": raw.get("availability"),
        "image_url": featured.get("url") if isinstance(featured, dict) else None,
        "raw": raw,
    }


def category_name_for(category_id: str | None) -> str | None:
    """Map a UI category id (``"faucets"``) to the catalog's category name."""
    if not category_id:
        return None
    for category in PRODUCT_CATEGORIES:
        if category["id"] == category_id:
            return category["name"]
    return None


class CatalogClient:
    """Synchronous client for the product catalog.

    Args:
        base_url: Catalog API root, e.g. ``https://host/catalog/v3``
        timeout: Request timeout in seconds
        transport: Optional httpx transport (``httpx.MockTransport`` in tests)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def _get(self, path: str, params: dict | None = None) -> httpx.Response:
        try:
            return self._http.get(path, params=params)
        except httpx.HTTPError as e:
            logger.error("Catalog request %s failed: %s", path, e)
            raise CatalogError(f"Catalog API unreachable: {e}") from e

    def _get_json(self, path: str, params: dict | None = None) -> dict:
        return self._decode(path, self._get(path, params))

    @staticmethod
    def _decode(path: str, response: httpx.Response) -> dict:
        """Return the JSON body of a successful response or raise ``CatalogError``."""
        if response.is_error:
            logger.error("Catalog API %s returned %s", path, response.status_code)
            raise CatalogError(
                f"Catalog API error: {response.status_code}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise CatalogError("Catalog API returned invalid JSON") from e

    def fetch_products(
        self,
        category: str | None = None,
        search: str | None = None,
        page: int = 1,
        per_page: int = 25,
    ) -> dict:
        """Fetch one page of products.

        Args:
            category: UI category id; unknown ids are ignored
            search: Case-insensitive filter on product or category name
            page: One-based page number
            per_page: Page size requested from the catalog

        Returns:
            Dictionary with ``data`` (normalised products) and ``pagination``
            (``total``, ``page``, ``per_page``, ``total_pages``)

        Raises:
            CatalogError: On transport errors or non-2xx responses
        """
        params: dict = {"perPage": per_page, "currentPage": page}
        category_name = category_name_for(category)
        if category_name:
            params["categoryName"] = category_name

        payload = self._get_json("/products", params)
        products = [normalize_product(p) for p in payload.get("data") or []]

        if search:
            needle = search.lower()
            products = [
                p
                for p in products
                if needle in p["name"].lower() or needle in p["category"].lower()
            ]
            return {
                "data": products,
                "pagination": {
                    "total": len(products),
                    "page": 1,
                    "per_page": len(products),
                    "total_pages": 1,
                },
            }

        upstream = payload.get("pagination") or {}
        return {
            "data": products,
            "pagination": {
                "total": upstream.get("total", len(products)),
                "page": upstream.get("currentPage", page),
                "per_page": upstream.get("perPage", per_page),
                "total_pages": upstream.get("lastPage", 1),
            },
        }

    def fetch_product(self, product_id: str) -> dict | None:
        """Fetch a single product, returning ``None`` when it does not exist."""
        response = self._get(f"/products/{product_id}")
        if response.status_code == 404:
            return None
        payload = self._decode(f"/products/{product_id}", response)
        # Some deployments wrap single objects in {"data": {...}}.
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            payload = payload["data"]
        if not isinstance(payload, dict):
            raise CatalogError("Catalog API returned an unexpected product payload")
        return normalize_product(payload)

    def fetch_categories(self) -> list[dict]:
        """Collect every distinct category name across all catalog pages.

        Returns:
            Alphabetically sorted ``{"id": name, "name": name}`` entries.  The
            name doubles as the id because it is what the catalog filters on.
        """
        first = self._get_json("/products", {"perPage": CATEGORY_PAGE_SIZE, "currentPage": 1})
        last_page = int((first.get("pagination") or {}).get("lastPage") or 1)

        names: set[str] = set()
        pages = [first]
        for page in range(2, last_page + 1):
            pages.append(
                self._get_json("/products", {"perPage": CATEGORY_PAGE_SIZE, "currentPage": page})
            )

        for payload in pages:
            for raw in payload.get("data") or []:
                name = normalize_product(raw)["category"]
                if name:
                    names.add(name)

        return [{"id": name, "name": name} for name in sorted(names, key=str.lower)]
