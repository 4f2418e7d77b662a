"""Shared pytest fixtures for Studio Prompt Lab tests."""

from __future__ import annotations

import io
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from studiolab.core.catalog import CatalogClient
from studiolab.core.config import StudioConfig
from studiolab.core.database import Database
from studiolab.core.image_client import GeneratedImage, GenerationResult
from studiolab.core.input_sets import InputSetStore
from studiolab.core.runs import RunStore
from studiolab.core.storage import FileStorage
from studiolab.core.templates import TemplateStore

CATALOG_URL = "https://catalog.test/v3"

# Products in the shape the catalog API returns them.
CATALOG_PRODUCTS = [
    {
        "id": 101,
        "name": "Arbor Single-Handle Faucet",
        "category": {"id": 1, "name": "Faucets"},
        "price": 129.0,
        "availability": "in_stock",
        "featuredImage": {"url": "https://img.test/101.jpg"},
    },
    {
        "id": 102,
        "name": "Crest Widespread Faucet",
        "category": {"id": 1, "name": "Faucets"},
        "price": 189.0,
        "availability": "in_stock",
        "featuredImage": {"url": "https://img.test/102.jpg"},
    },
    {
        "id": 201,
        "name": "Oval Frameless Mirror",
        "category": {"id": 2, "name": "Mirror"},
        "price": 89.0,
        "availability": "backorder",
        "featuredImage": None,
    },
    {
        "id": 301,
        "name": "Teak Floating Vanity",
        "category": {"id": 3, "name": "Vanities"},
        "price": 799.0,
        "availability": "in_stock",
        "featuredImage": {"url": "https://img.test/301.jpg"},
    },
    {
        "id": 401,
        "name": "Brass Towel Ring",
        "category": {"id": 4, "name": "Towel Rings"},
        "price": 24.0,
        "availability": "in_stock",
        "featuredImage": {"url": "https://img.test/401.jpg"},
    },
]


def make_png(color: str = "red", size: tuple[int, int] = (8, 8)) -> bytes:
    """Return the bytes of a small solid-colour PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeImageClient:
    """Stand-in for ``GeminiImageClient`` that never touches the network.

    Every ``generate`` call is recorded in :attr:`calls`.  Queued
    :attr:`results` are returned in order (an ``Exception`` instance is
    raised instead); once the queue is empty each call succeeds with a
    freshly coloured PNG.
    """

    def __init__(self, configured: bool = True):
        self.calls: list[dict] = []
        self.results: list = []
        self.configured = configured

    @property
    def is_configured(self) -> bool:
        return self.configured

    def generate(
        self,
        prompt,
        reference_images=(),
        model=None,
        aspect_ratio="1:1",
        image_size="1K",
        temperature=None,
    ) -> GenerationResult:
        self.calls.append(
            {
                "prompt": prompt,
                "reference_images": list(reference_images),
                "model": model,
                "aspect_ratio": aspect_ratio,
                "image_size": image_size,
                "temperature": temperature,
            }
        )
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        color = ("green", "blue", "yellow", "purple")[(len(self.calls) - 1) % 4]
        return GenerationResult(
            success=True,
            images=[GeneratedImage(data=make_png(color), mime_type="image/png")],
            text=f"step {len(self.calls)}",
        )

    def generate_chain(self, steps, initial_images=()) -> list[GenerationResult]:
        results = []
        current = list(initial_images)
        for step in steps:
            result = self.generate(
                prompt=step["prompt"],
                reference_images=current,
                model=step.get("model"),
                aspect_ratio=step.get("aspect_ratio", "1:1"),
                image_size=step.get("image_size", "1K"),
                temperature=step.get("temperature"),
            )
            results.append(result)
            if not result.success:
                break
            current = result.images
        return results


def catalog_handler(request: httpx.Request) -> httpx.Response:
    """Serve ``CATALOG_PRODUCTS`` the way the catalog API paginates them."""
    path = request.url.path
    if path.endswith("/products"):
        params = request.url.params
        per_page = int(params.get("perPage", 25))
        page = int(params.get("currentPage", 1))
        products = CATALOG_PRODUCTS
        if "categoryName" in params:
            products = [p for p in products if p["category"]["name"] == params["categoryName"]]
        last_page = max(1, -(-len(products) // per_page))
        start = (page - 1) * per_page
        return httpx.Response(
            200,
            json={
                "data": products[start : start + per_page],
                "pagination": {
                    "currentPage": page,
                    "perPage": per_page,
                    "total": len(products),
                    "lastPage": last_page,
                },
            },
        )

    if "/products/" in path:
        product_id = path.rsplit("/", 1)[-1]
        for product in CATALOG_PRODUCTS:
            if str(product["id"]) == product_id:
                return httpx.Response(200, json={"data": product})
        return httpx.Response(404, json={"error": "not found"})

    return httpx.Response(404)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> StudioConfig:
    """Create a test configuration rooted in the temporary directory.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        StudioConfig instance for testing
    """
    return StudioConfig(
        data_dir=temp_dir / "data",
        database_path=temp_dir / "data" / "test.db",
        uploads_dir=temp_dir / "data" / "uploads",
        outputs_dir=temp_dir / "data" / "outputs",
        gemini_api_key=None,
        catalog_api_url=CATALOG_URL,
        app_url="http://lab.test",
    )


@pytest.fixture
def png_bytes() -> bytes:
    """A small valid PNG image."""
    return make_png()


@pytest.fixture
def database(test_config: StudioConfig) -> Database:
    return Database(test_config.database_path)


@pytest.fixture
def input_set_store(database: Database) -> InputSetStore:
    return InputSetStore(database)


@pytest.fixture
def template_store(database: Database) -> TemplateStore:
    return TemplateStore(database)


@pytest.fixture
def run_store(database: Database) -> RunStore:
    return RunStore(database)


@pytest.fixture
def storage(test_config: StudioConfig) -> FileStorage:
    return FileStorage(test_config.uploads_dir, test_config.outputs_dir)


@pytest.fixture
def fake_image_client() -> FakeImageClient:
    return FakeImageClient()


@pytest.fixture
def catalog_client() -> Generator[CatalogClient, None, None]:
    """Catalog client backed by ``httpx.MockTransport``."""
    client = CatalogClient(CATALOG_URL, timeout=5.0, transport=httpx.MockTransport(catalog_handler))
    try:
        yield client
    finally:
        client.close()


@pytest.fixture
def sample_input_set(input_set_store: InputSetStore, storage: FileStorage, png_bytes: bytes) -> dict:
    """An input set with one stored upload and one catalog product."""
    upload = storage.save_upload("bathroom.png", png_bytes, "image/png")
    return input_set_store.create_input_set(
        "Bathroom refresh",
        images=[upload],
        products=[
            {
                "catalog_id": "101",
                "name": "Arbor Single-Handle Faucet",
                "category": "Faucets",
                "image_url": "https://img.test/101.jpg",
                "metadata": {"finish": "brushed nickel"},
            }
        ],
    )


@pytest.fixture
def sample_template(template_store: TemplateStore) -> dict:
    """A two-step template using the product placeholder."""
    return template_store.create_template(
        "Vanity scene",
        [
            {"prompt": "Place {{product}} in a bright bathroom", "aspect_ratio": "4:3"},
            {"prompt": "Make the lighting warmer", "temperature": 0.5},
        ],
        description="Two-step staging",
    )


@pytest.fixture
def test_client(
    test_config: StudioConfig,
    fake_image_client: FakeImageClient,
    catalog_client: CatalogClient,
) -> Generator[TestClient, None, None]:
    """FastAPI TestClient wired to temporary storage and fake integrations."""
    from studiolab.api.main import create_app

    app = create_app(test_config, image_client=fake_image_client, catalog_client=catalog_client)
    with TestClient(app) as client:
        yield client
