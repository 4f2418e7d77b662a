"""Tests for studiolab.core.catalog — the product catalog client.

Requests are served by ``httpx.MockTransport`` (see ``catalog_handler`` in
``conftest.py``), so the tests exercise the real httpx request path.
"""

from __future__ import annotations

import httpx
import pytest

from studiolab.core.catalog import (
    CatalogClient,
    CatalogError,
    category_name_for,
    normalize_product,
)


class TestNormalizeProduct:
    def test_nested_fields_flattened(self):
        raw = {
            "id": 7,
            "name": "Faucet",
            "category": {"id": 1, "name": "Faucets"},
            "price": 10.5,
            "availability": "in_stock",
            "featuredImage": {"url": "https://img.test/7.jpg"},
        }
        product = normalize_product(raw)
        assert product == {
            "id": "7",
            "name": "Faucet",
            "category": "Faucets",
            "price": 10.5,
            "availability": "in_stock",
            "image_url": "https://img.test/7.jpg",
            "raw": raw,
        }

    def test_missing_fields(self):
        product = normalize_product({"id": 1})
        assert product["name"] == ""
        assert product["category"] == ""
        assert product["image_url"] is None

    def test_plain_category_string(self):
        assert normalize_product({"id": 1, "category": "Mirror"})["category"] == "Mirror"


class TestCategoryMapping:
    def test_known_id(self):
        assert category_name_for("mirrors") == "Mirror"

    @pytest.mark.parametrize("category_id", [None, "", "unknown"])
    def test_unknown_or_missing(self, category_id):
        assert category_name_for(category_id) is None


class TestFetchProducts:
    def test_upstream_pagination_mapped(self, catalog_client: CatalogClient):
        page = catalog_client.fetch_products(page=2, per_page=2)
        assert [p["id"] for p in page["data"]] == ["201", "301"]
        assert page["pagination"] == {"total": 5, "page": 2, "per_page": 2, "total_pages": 3}

    def test_category_filter(self, catalog_client: CatalogClient):
        page = catalog_client.fetch_products(category="faucets")
        assert {p["category"] for p in page["data"]} == {"Faucets"}
        assert page["pagination"]["total"] == 2

    def test_unknown_category_not_filtered(self, catalog_client: CatalogClient):
        assert len(catalog_client.fetch_products(category="nope")["data"]) == 5

    def test_search_filters_page_locally(self, catalog_client: CatalogClient):
        page = catalog_client.fetch_products(search="FAUCET")
        assert [p["id"] for p in page["data"]] == ["101", "102"]
        assert page["pagination"] == {"total": 2, "page": 1, "per_page": 2, "total_pages": 1}

    def test_search_matches_category_name(self, catalog_client: CatalogClient):
        page = catalog_client.fetch_products(search="towel rings")
        assert [p["id"] for p in page["data"]] == ["401"]

    def test_query_parameters_sent(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            seen["path"] = request.url.path
            return httpx.Response(200, json={"data": [], "pagination": {}})

        client = CatalogClient("https://catalog.test/v3", transport=httpx.MockTransport(handler))
        client.fetch_products(category="vanities", page=3, per_page=10)
        assert seen == {
            "perPage": "10",
            "currentPage": "3",
            "categoryName": "Vanities",
            "path": "/v3/products",
        }

    def test_http_error_raises(self):
        client = CatalogClient(
            "https://catalog.test/v3",
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )
        with pytest.raises(CatalogError) as excinfo:
            client.fetch_products()
        assert excinfo.value.status_code == 503

    def test_transport_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = CatalogClient("https://catalog.test/v3", transport=httpx.MockTransport(handler))
        with pytest.raises(CatalogError, match="unreachable"):
            client.fetch_products()


class TestFetchProduct:
    def test_found(self, catalog_client: CatalogClient):
        product = catalog_client.fetch_product("201")
        assert product["name"] == "Oval Frameless Mirror"
        assert product["image_url"] is None

    def test_not_found(self, catalog_client: CatalogClient):
        assert catalog_client.fetch_product("999") is None

    def test_unwrapped_payload(self):
        client = CatalogClient(
            "https://catalog.test/v3",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={"id": 5, "name": "Bare"})
            ),
        )
        assert client.fetch_product("5")["name"] == "Bare"

    def test_server_error_raises(self):
        client = CatalogClient(
            "https://catalog.test/v3",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        with pytest.raises(CatalogError):
            client.fetch_product("5")

    def test_non_json_body_raises(self):
        client = CatalogClient(
            "https://catalog.test/v3",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, text="<html>maintenance</html>")
            ),
        )
        with pytest.raises(CatalogError, match="invalid JSON"):
            client.fetch_product("5")

    def test_non_object_payload_raises(self):
        client = CatalogClient(
            "https://catalog.test/v3",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[1, 2])),
        )
        with pytest.raises(CatalogError):
            client.fetch_product("5")


class TestFetchCategories:
    def test_walks_all_pages(self):
        requested_pages = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["currentPage"])
            requested_pages.append(page)
            names = {1: ["Vanities", "faucets"], 2: ["Mirror", "Vanities"], 3: [""]}[page]
            return httpx.Response(
                200,
                json={
                    "data": [{"id": i, "category": {"name": n}} for i, n in enumerate(names)],
                    "pagination": {"lastPage": 3},
                },
            )

        client = CatalogClient("https://catalog.test/v3", transport=httpx.MockTransport(handler))
        categories = client.fetch_categories()

        assert requested_pages == [1, 2, 3]
        assert categories == [
            {"id": "faucets", "name": "faucets"},
            {"id": "Mirror", "name": "Mirror"},
            {"id": "Vanities", "name": "Vanities"},
        ]

    def test_from_fixture_catalog(self, catalog_client: CatalogClient):
        names = [c["name"] for c in catalog_client.fetch_categories()]
        assert names == ["Faucets", "Mirror", "Towel Rings", "Vanities"]

    def test_null_last_page_reads_single_page(self):
        requested_pages = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested_pages.append(int(request.url.params["currentPage"]))
            return httpx.Response(
                200,
                json={
                    "data": [{"id": 1, "category": {"name": "Faucets"}}],
                    "pagination": {"lastPage": None},
                },
            )

        client = CatalogClient("https://catalog.test/v3", transport=httpx.MockTransport(handler))
        assert client.fetch_categories() == [{"id": "Faucets", "name": "Faucets"}]
        assert requested_pages == [1]
