# Overview: Pytest coverage for the catalog lookup client.

import httpx

from posledger.services.catalog import CatalogClient


def client_for(handler):
    return CatalogClient("http://catalog.test/", transport=httpx.MockTransport(handler))


class TestCatalogClient:

    def test_disabled_without_base_url(self):
        catalog = CatalogClient(None)
        assert catalog.enabled is False
        assert catalog.get_product(1) is None
        assert catalog.get_products([1, 2]) == {}

    def test_from_config(self):
        catalog = CatalogClient.from_config({"CATALOG_BASE_URL": "http://catalog.test", "CATALOG_TIMEOUT_SECONDS": 5})
        assert catalog.enabled
        assert catalog.timeout == 5.0

    def test_get_product(self):
        def handler(request):
            assert request.url.path == "/products/7"
            return httpx.Response(200, json={"id": 7, "name": "Mug"})

        assert client_for(handler).get_product(7) == {"id": 7, "name": "Mug"}

    def test_unknown_product(self):
        assert client_for(lambda request: httpx.Response(404)).get_product(7) is None

    def test_server_error_is_swallowed(self, caplog):
        assert client_for(lambda request: httpx.Response(500)).get_product(7) is None
        assert "Catalog lookup failed" in caplog.text

    def test_connection_error_is_swallowed(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert client_for(handler).get_products([1]) == {}

    def test_get_products_batches_ids(self):
        seen = {}

        def handler(request):
            seen["ids"] = request.url.params["ids"]
            return httpx.Response(200, json={"items": [{"id": 1, "name": "A"}, {"id": 3, "name": "C"}]})

        products = client_for(handler).get_products([3, 1, 3, 2])

        assert seen["ids"] == "1,2,3"
        assert set(products) == {1, 3}

    def test_bad_json_is_swallowed(self):
        assert client_for(lambda request: httpx.Response(200, content=b"not json")).get_products([1]) == {}
