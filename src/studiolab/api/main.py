"""Studio Prompt Lab — FastAPI Application.

This module is the single entry point for the web application.  It defines
the :func:`create_app` factory, all REST API routes, the module-level ``app``
used by uvicorn, and the ``main()`` CLI function that launches the server.

Architecture
------------
The application follows a stateless REST pattern:

- **Configuration** comes from :class:`~studiolab.core.config.StudioConfig`
  (``STUDIOLAB_*`` environment variables / ``.env``).  Fixed option lists
  are served to the frontend via ``GET /api/config``.
- **Persistence** uses a single SQLite file managed by
  :class:`~studiolab.core.database.Database` and one store per aggregate.
- **Run execution** is performed by
  :class:`~studiolab.core.executor.RunExecutor`, which calls the Gemini
  image client once per template step.
- **Product search** is proxied to the catalog API by
  :class:`~studiolab.core.catalog.CatalogClient`.
- **Static assets** (CSS, JS) and uploaded images are served by FastAPI's
  ``StaticFiles``; generated images are served by ``GET /api/outputs``.
- **The HTML page** is served as a raw ``HTMLResponse``; all dynamic data is
  fetched by the browser from the JSON endpoints.

Collaborators live on ``app.state`` so tests can build an app with a temporary
database, a fake image client, and a mocked catalog transport.

Endpoints
---------
==========  ================================  ===============================
Method      Path                              Purpose
==========  ================================  ===============================
GET         ``/``                             Serve the main HTML page
GET         ``/api/config``                   Models, ratios, sizes, tags
GET         ``/api/dashboard``                Counts and recent runs
GET/POST    ``/api/inputs``                   List / create input sets
GET/PUT/    ``/api/inputs/{id}``              Read / update / delete
DELETE
GET/POST    ``/api/prompts``                  List / create templates
GET/PUT/    ``/api/prompts/{id}``             Read / update / delete
DELETE
GET/POST    ``/api/runs``                     List / create runs
GET/DELETE  ``/api/runs/{id}``                Read / delete a run
POST        ``/api/runs/{id}/execute``        Execute the prompt chain
POST        ``/api/runs/{id}/rerun``          New pending run, same inputs
GET         ``/api/results``                  Filtered result listing
GET/PATCH   ``/api/results/{id}``             Read / review a result
GET         ``/api/export``                   JSON or CSV export
GET         ``/api/catalog``                  Product search
GET         ``/api/catalog/categories``       Distinct category names
GET         ``/api/catalog/products/{id}``    One catalog product
POST        ``/api/generate``                 One-off generation
POST        ``/api/generate/chain``           One-off prompt chain
POST        ``/api/upload``                   Multipart image upload
GET         ``/api/outputs/{path}``           Serve generated images
==========  ================================  ===============================

Usage
-----
CLI (installed entry point)::

    studiolab

Direct invocation::

    python -m studiolab.api.main
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

from studiolab import __version__
from studiolab.api.models import (
    ChainGenerateRequest,
    GenerateRequest,
    InputSetCreate,
    InputSetUpdate,
    ReferenceImageIn,
    ResultUpdate,
    RunCreate,
    TemplateCreate,
    TemplateUpdate,
)
from studiolab.core.catalog import CatalogClient, CatalogError
from studiolab.core.config import StudioConfig, config
from studiolab.core.constants import (
    ASPECT_RATIOS,
    COMMON_TAGS,
    DEFAULT_ASPECT_RATIO,
    DEFAULT_IMAGE_SIZE,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    IMAGE_SIZES,
    MODELS,
    PRODUCT_CATEGORIES,
    RUN_STATUSES,
)
from studiolab.core.dashboard import dashboard_summary
from studiolab.core.database import Database
from studiolab.core.executor import RunAlreadyRunningError, RunExecutor
from studiolab.core.export import (
    export_rated_results,
    export_run,
    results_to_csv,
    run_to_csv,
)
from studiolab.core.image_client import GeminiImageClient, GeneratedImage, GenerationResult
from studiolab.core.input_sets import InputSetStore
from studiolab.core.runs import RunStore
from studiolab.core.storage import FileStorage, InvalidPathError, StorageError
from studiolab.core.templates import TemplateStore

logger = logging.getLogger(__name__)

OUTPUT_CACHE_CONTROL = "public, max-age=31536000, immutable"

router = APIRouter()


# ---------------------------------------------------------------------------
# Request helpers.
# ---------------------------------------------------------------------------


def _not_found(what: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{what} not found")


def _base_url(request: Request) -> str:
    """Base URL for absolute links in exports (``app_url`` wins)."""
    settings: StudioConfig = request.app.state.settings
    return settings.app_url or str(request.base_url)


def _decode_references(images: list[ReferenceImageIn]) -> list[GeneratedImage]:
    """Decode base64 reference images from a generation request.

    Accepts both raw base64 and ``data:<mime>;base64,<data>`` URLs.

    Raises:
        HTTPException: 400 if an image is not valid base64.
    """
    decoded = []
    for image in images:
        data = image.data
        mime_type = image.mime_type
        if data.startswith("data:") and "," in data:
            header, data = data.split(",", 1)
            mime_type = header[5:].split(";", 1)[0] or mime_type
        try:
            decoded.append(
                GeneratedImage(data=base64.b64decode(data, validate=True), mime_type=mime_type)
            )
        except (binascii.Error, ValueError) as e:
            raise HTTPException(status_code=400, detail="Invalid base64 reference image") from e
    return decoded


def _result_payload(result: GenerationResult) -> dict:
    return {
        "success": result.success,
        "images": [
            {"data": image.to_base64(), "mime_type": image.mime_type} for image in result.images
        ],
        "text": result.text,
        "error": result.error,
    }


def _remove_outputs(request: Request, run_ids: list[str]) -> None:
    storage: FileStorage = request.app.state.storage
    for run_id in run_ids:
        storage.delete_run_outputs(run_id)


# ---------------------------------------------------------------------------
# Page and configuration.
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
async def index(request: Request) -> HTMLResponse:
    """Serve the main application HTML page.

    Reads ``templates/index.html`` and returns it directly.  All dynamic
    data is fetched by the frontend JavaScript on page load.

    Raises:
        HTTPException: 404 if ``index.html`` is not found.
    """
    index_path = request.app.state.settings.templates_dir / "index.html"
    if index_path.exists():
        return HTMLResponse(content=index_path.read_text(encoding="utf-8"))
    raise HTTPException(status_code=404, detail="index.html not found")


@router.get("/api/config")
async def get_config(request: Request) -> dict:
    """Return the option lists and defaults the frontend needs.

    Returns:
        Dictionary with ``version``, ``models``, ``aspect_ratios``,
        ``image_sizes``, ``defaults``, ``common_tags``, ``categories``,
        ``run_statuses``, and ``generation_enabled``.
    """
    return {
        "version": __version__,
        "models": MODELS,
        "aspect_ratios": ASPECT_RATIOS,
        "image_sizes": IMAGE_SIZES,
        "defaults": {
            "model": DEFAULT_MODEL,
            "aspect_ratio": DEFAULT_ASPECT_RATIO,
            "image_size": DEFAULT_IMAGE_SIZE,
            "temperature": DEFAULT_TEMPERATURE,
        },
        "common_tags": COMMON_TAGS,
        "categories": PRODUCT_CATEGORIES,
        "run_statuses": list(RUN_STATUSES),
        "generation_enabled": request.app.state.image_client.is_configured,
    }


@router.get("/api/dashboard")
async def get_dashboard(request: Request) -> dict:
    """Return entity counts, the average rating, and the five newest runs."""
    state = request.app.state
    return await run_in_threadpool(dashboard_summary, state.database, state.runs)


# ---------------------------------------------------------------------------
# Input sets.
# ---------------------------------------------------------------------------


@router.get("/api/inputs")
async def list_input_sets(request: Request) -> list[dict]:
    """List input sets newest first, with images, products, and run counts."""
    return await run_in_threadpool(request.app.state.input_sets.list_input_sets)


@router.post("/api/inputs", status_code=201)
async def create_input_set(req: InputSetCreate, request: Request) -> dict:
    """Create an input set from uploaded images and catalog products.

    Raises:
        HTTPException: 400 if the name is blank.
    """
    store: InputSetStore = request.app.state.input_sets
    try:
        return await run_in_threadpool(
            store.create_input_set,
            req.name,
            images=[image.model_dump() for image in req.images],
            products=[product.model_dump() for product in req.products],
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/api/inputs/{input_set_id}")
async def get_input_set(input_set_id: str, request: Request) -> dict:
    """Return one input set with its ten most recent runs.

    Raises:
        HTTPException: 404 if the input set does not exist.
    """
    input_set = await run_in_threadpool(request.app.state.input_sets.get_input_set, input_set_id)
    if input_set is None:
        raise _not_found("Input set")
    return input_set


@router.put("/api/inputs/{input_set_id}")
async def update_input_set(input_set_id: str, req: InputSetUpdate, request: Request) -> dict:
    """Rename an input set, append images/products, and remove listed ones.

    Raises:
        HTTPException: 400 for a blank name, 404 if the set does not exist.
    """
    store: InputSetStore = request.app.state.input_sets
    try:
        input_set = await run_in_threadpool(
            store.update_input_set,
            input_set_id,
            name=req.name,
            images=[image.model_dump() for image in req.images],
            products=[product.model_dump() for product in req.products],
            remove_image_ids=req.remove_image_ids,
            remove_product_ids=req.remove_product_ids,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if input_set is None:
        raise _not_found("Input set")
    return input_set


@router.delete("/api/inputs/{input_set_id}")
async def delete_input_set(input_set_id: str, request: Request) -> dict:
    """Delete an input set, its runs, and the runs' generated images.

    Raises:
        HTTPException: 404 if the input set does not exist.
    """
    state = request.app.state
    run_ids = await run_in_threadpool(state.runs.run_ids, input_set_id=input_set_id)
    if not await run_in_threadpool(state.input_sets.delete_input_set, input_set_id):
        raise _not_found("Input set")
    _remove_outputs(request, run_ids)
    return {"success": True}


# ---------------------------------------------------------------------------
# Prompt templates.
# ---------------------------------------------------------------------------


@router.get("/api/prompts")
async def list_templates(request: Request) -> list[dict]:
    """List prompt templates newest first, with ordered steps and run counts."""
    return await run_in_threadpool(request.app.state.templates.list_templates)


@router.post("/api/prompts", status_code=201)
async def create_template(req: TemplateCreate, request: Request) -> dict:
    """Create a prompt template.

    Raises:
        HTTPException: 400 if the name is blank or a step prompt is empty.
    """
    store: TemplateStore = request.app.state.templates
    try:
        return await run_in_threadpool(
            store.create_template,
            req.name,
            [step.model_dump() for step in req.steps],
            description=req.description,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/api/prompts/{template_id}")
async def get_template(template_id: str, request: Request) -> dict:
    """Return one template with its steps and ten most recent runs.

    Raises:
        HTTPException: 404 if the template does not exist.
    """
    template = await run_in_threadpool(request.app.state.templates.get_template, template_id)
    if template is None:
        raise _not_found("Template")
    return template


@router.put("/api/prompts/{template_id}")
async def update_template(template_id: str, req: TemplateUpdate, request: Request) -> dict:
    """Update a template.  A ``steps`` list replaces every existing step.

    An explicit ``"description": null`` clears the description.

    Raises:
        HTTPException: 400 for invalid values, 404 if the template is missing.
    """
    store: TemplateStore = request.app.state.templates
    steps = [step.model_dump() for step in req.steps] if req.steps is not None else None
    try:
        template = await run_in_threadpool(
            store.update_template,
            template_id,
            name=req.name,
            description=req.description,
            steps=steps,
            clear_description="description" in req.model_fields_set and req.description is None,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if template is None:
        raise _not_found("Template")
    return template


@router.delete("/api/prompts/{template_id}")
async def delete_template(template_id: str, request: Request) -> dict:
    """Delete a template, its runs, and the runs' generated images.

    Raises:
        HTTPException: 404 if the template does not exist.
    """
    state = request.app.state
    run_ids = await run_in_threadpool(state.runs.run_ids, template_id=template_id)
    if not await run_in_threadpool(state.templates.delete_template, template_id):
        raise _not_found("Template")
    _remove_outputs(request, run_ids)
    return {"success": True}


# ---------------------------------------------------------------------------
# Runs.
# ---------------------------------------------------------------------------


@router.get("/api/runs")
async def list_runs(
    request: Request,
    status: str | None = None,
    input_set_id: str | None = None,
    template_id: str | None = None,
) -> list[dict]:
    """List runs newest first, optionally filtered by status or references.

    Raises:
        HTTPException: 400 for an unknown status.
    """
    if status is not None and status not in RUN_STATUSES:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status}")
    return await run_in_threadpool(
        request.app.state.runs.list_runs,
        status=status,
        input_set_id=input_set_id,
        template_id=template_id,
    )


@router.post("/api/runs", status_code=201)
async def create_run(req: RunCreate, request: Request) -> dict:
    """Create a pending run for an input set and a template.

    Raises:
        HTTPException: 404 if either reference does not exist.
    """
    state = request.app.state
    if await run_in_threadpool(state.input_sets.get_input_set, req.input_set_id) is None:
        raise _not_found("Input set")
    if await run_in_threadpool(state.templates.get_template, req.template_id) is None:
        raise _not_found("Template")
    return await run_in_threadpool(state.runs.create_run, req.input_set_id, req.template_id)


@router.get("/api/runs/{run_id}")
async def get_run(run_id: str, request: Request) -> dict:
    """Return a run with its full input set, template steps, and results.

    Raises:
        HTTPException: 404 if the run does not exist.
    """
    run = await run_in_threadpool(request.app.state.runs.get_run, run_id)
    if run is None:
        raise _not_found("Run")
    return run


@router.delete("/api/runs/{run_id}")
async def delete_run(run_id: str, request: Request) -> dict:
    """Delete a run, its results, and its generated images.

    Raises:
        HTTPException: 404 if the run does not exist.
    """
    if not await run_in_threadpool(request.app.state.runs.delete_run, run_id):
        raise _not_found("Run")
    _remove_outputs(request, [run_id])
    return {"success": True}


@router.post("/api/runs/{run_id}/execute")
async def execute_run(run_id: str, request: Request) -> dict:
    """Execute a run's prompt chain and return the updated run.

    The call blocks until every step has finished or the chain stopped at a
    failing step.  Step failures are recorded on the run, not raised.

    Raises:
        HTTPException: 400 if the run is already running, 404 if it does not
            exist, 500 if execution aborted unexpectedly.
    """
    executor: RunExecutor = request.app.state.executor
    try:
        run = await run_in_threadpool(executor.execute, run_id)
    except RunAlreadyRunningError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Run execution failed: {e}")
        raise HTTPException(status_code=500, detail=f"Run execution failed: {e}") from e
    if run is None:
        raise _not_found("Run")
    return run


@router.post("/api/runs/{run_id}/rerun", status_code=201)
async def rerun(run_id: str, request: Request) -> dict:
    """Create a new pending run with the same input set and template.

    Raises:
        HTTPException: 404 if the run does not exist.
    """
    runs: RunStore = request.app.state.runs
    original = await run_in_threadpool(runs.get_run_summary, run_id)
    if original is None:
        raise _not_found("Run")
    return await run_in_threadpool(
        runs.create_run, original["input_set"]["id"], original["template"]["id"]
    )


# ---------------------------------------------------------------------------
# Results and review.
# ---------------------------------------------------------------------------


@router.get("/api/results")
async def list_results(
    request: Request,
    min_rating: int | None = Query(default=None, ge=1, le=5),
    max_rating: int | None = Query(default=None, ge=1, le=5),
    tags: str | None = Query(default=None, description="Comma-separated tags (any match)"),
    run_id: str | None = None,
    search: str | None = None,
) -> list[dict]:
    """List results newest first, filtered by rating, tags, run, or input set name."""
    tag_list = [tag.strip() for tag in tags.split(",") if tag.strip()] if tags else None
    return await run_in_threadpool(
        request.app.state.runs.list_results,
        min_rating=min_rating,
        max_rating=max_rating,
        tags=tag_list,
        run_id=run_id,
        search=search,
    )


@router.get("/api/results/{result_id}")
async def get_result(result_id: str, request: Request) -> dict:
    """Return one result with its run summary.

    Raises:
        HTTPException: 404 if the result does not exist.
    """
    result = await run_in_threadpool(request.app.state.runs.get_result, result_id)
    if result is None:
        raise _not_found("Result")
    return result


@router.patch("/api/results/{result_id}")
async def update_result(result_id: str, req: ResultUpdate, request: Request) -> dict:
    """Update the rating, notes, or tags of a result.

    Only fields present in the body change; ``null`` clears rating or notes.

    Raises:
        HTTPException: 400 for an invalid rating, 404 if the result is missing.
    """
    changes = req.model_dump(include=req.model_fields_set)
    try:
        result = await run_in_threadpool(request.app.state.runs.update_result, result_id, changes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if result is None:
        raise _not_found("Result")
    return result


@router.get("/api/export")
async def export(
    request: Request,
    run_id: str | None = None,
    export_format: str = Query(default="json", alias="format", pattern="^(json|csv)$"),
) -> Response:
    """Download a run, or every rated result, as JSON or CSV.

    Args:
        run_id: Export this run; without it every rated result is exported.
        export_format: ``json`` (default) or ``csv``.

    Raises:
        HTTPException: 404 if ``run_id`` names a missing run.
    """
    runs: RunStore = request.app.state.runs
    base_url = _base_url(request)

    if run_id:
        run = await run_in_threadpool(runs.get_run, run_id)
        if run is None:
            raise _not_found("Run")
        stem = f"run-{run_id}"
        if export_format == "csv":
            body = run_to_csv(run, base_url)
        else:
            document = export_run(run, base_url)
    else:
        results = await run_in_threadpool(runs.list_results, rated_only=True)
        stem = "results-export"
        if export_format == "csv":
            body = results_to_csv(results, base_url)
        else:
            document = export_rated_results(results, base_url)

    headers = {"Content-Disposition": f'attachment; filename="{stem}.{export_format}"'}
    if export_format == "csv":
        return Response(content=body, media_type="text/csv", headers=headers)
    return JSONResponse(content=document, headers=headers)


# ---------------------------------------------------------------------------
# Product catalog.
# ---------------------------------------------------------------------------


@router.get("/api/catalog")
async def search_catalog(
    request: Request,
    category: str | None = None,
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=25, ge=1, le=100),
) -> dict:
    """Search the product catalog.

    Returns:
        Dictionary with ``data`` (products), ``pagination``, and the
        ``categories`` the UI offers as filters.

    Raises:
        HTTPException: 502 if the catalog API fails.
    """
    catalog: CatalogClient = request.app.state.catalog_client
    try:
        products = await run_in_threadpool(
            catalog.fetch_products,
            category=category,
            search=search,
            page=page,
            per_page=per_page,
        )
    except CatalogError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    return {**products, "categories": PRODUCT_CATEGORIES}


@router.get("/api/catalog/categories")
async def catalog_categories(request: Request) -> list[dict]:
    """Return every distinct category name found in the catalog.

    Raises:
        HTTPException: 502 if the catalog API fails.
    """
    try:
        return await run_in_threadpool(request.app.state.catalog_client.fetch_categories)
    except CatalogError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e


@router.get("/api/catalog/products/{product_id}")
async def catalog_product(product_id: str, request: Request) -> dict:
    """Return a single catalog product.

    Raises:
        HTTPException: 404 if the catalog has no such product, 502 if the
            catalog API fails.
    """
    try:
        product = await run_in_threadpool(
            request.app.state.catalog_client.fetch_product, product_id
        )
    except CatalogError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    if product is None:
        raise _not_found("Product")
    return product


# ---------------------------------------------------------------------------
# One-off generation.
# ---------------------------------------------------------------------------


@router.post("/api/generate")
async def generate(req: GenerateRequest, request: Request) -> dict:
    """Generate images from a prompt without creating a run.

    Returns:
        Dictionary with ``success``, ``images`` (base64 ``data`` and
        ``mime_type``), ``text``, and ``error``.

    Raises:
        HTTPException: 400 for invalid reference images, 500 when the model
            produced no image.
    """
    references = _decode_references(req.reference_images)
    result = await run_in_threadpool(
        request.app.state.image_client.generate,
        prompt=req.prompt,
        reference_images=references,
        model=req.model,
        aspect_ratio=req.aspect_ratio,
        image_size=req.image_size,
        temperature=req.temperature,
    )
    if not result.success:
        raise HTTPException(status_code=500, detail=result.error or "Generation failed")
    return _result_payload(result)


@router.post("/api/generate/chain")
async def generate_chain(req: ChainGenerateRequest, request: Request) -> dict:
    """Run a prompt chain without persisting anything.

    Returns:
        Dictionary with ``success`` (every step succeeded) and ``steps``,
        one generation payload per attempted step.
    """
    references = _decode_references(req.reference_images)
    steps = [step.model_dump(exclude_none=True) for step in req.steps]
    results = await run_in_threadpool(
        request.app.state.image_client.generate_chain, steps, references
    )
    return {
        "success": len(results) == len(steps) and all(r.success for r in results),
        "steps": [_result_payload(r) for r in results],
    }


# ---------------------------------------------------------------------------
# Files.
# ---------------------------------------------------------------------------


@router.post("/api/upload")
async def upload(request: Request, files: list[UploadFile] | None = File(default=None)) -> dict:
    """Store uploaded reference images.

    Returns:
        ``{"files": [{"filename", "path", "mime_type"}, ...]}``

    Raises:
        HTTPException: 400 if no files were sent or a file is not an image.
    """
    if not files:
        raise HTTPException(status_code=400, detail="No files provided")

    storage: FileStorage = request.app.state.storage
    stored = []
    for upload_file in files:
        content = await upload_file.read()
        try:
            stored.append(
                await run_in_threadpool(
                    storage.save_upload,
                    upload_file.filename or "upload",
                    content,
                    upload_file.content_type,
                )
            )
        except StorageError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
    return {"files": stored}


@router.get("/api/outputs/{path:path}")
async def get_output(path: str, request: Request) -> FileResponse:
    """Serve a generated image with a long-lived cache header.

    Raises:
        HTTPException: 400 for an unsafe path, 404 if the file is missing.
    """
    storage: FileStorage = request.app.state.storage
    try:
        full_path, content_type = storage.resolve_output(path)
    except InvalidPathError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except StorageError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return FileResponse(
        full_path,
        media_type=content_type,
        headers={"Cache-Control": OUTPUT_CACHE_CONTROL},
    )


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(
    settings: StudioConfig | None = None,
    image_client=None,
    catalog_client: CatalogClient | None = None,
) -> FastAPI:
    """Build the FastAPI application and its collaborators.

    Args:
        settings: Configuration; defaults to the global ``config``.
        image_client: Object with ``generate``/``generate_chain``/
            ``is_configured``; defaults to a :class:`GeminiImageClient`.
        catalog_client: Catalog client; defaults to one built from settings.

    Returns:
        A ready-to-serve FastAPI application.
    """
    settings = settings or config
    database = Database(settings.database_path)
    storage = FileStorage(settings.uploads_dir, settings.outputs_dir)
    runs = RunStore(database)
    if image_client is None:
        image_client = GeminiImageClient(settings.gemini_api_key, settings.default_model)
    if catalog_client is None:
        catalog_client = CatalogClient(settings.catalog_api_url, timeout=settings.catalog_timeout)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Close the catalog HTTP client when the server stops."""
        logger.info("Studio Prompt Lab %s started (database: %s)", __version__, database.db_path)

        yield  # Application runs here.

        app.state.catalog_client.close()
        logger.info("Catalog client closed on shutdown.")

    app = FastAPI(
        title="Studio Prompt Lab",
        description="Prompt-chain testing for product imagery with Gemini image models.",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.database = database
    app.state.storage = storage
    app.state.input_sets = InputSetStore(database)
    app.state.templates = TemplateStore(database)
    app.state.runs = runs
    app.state.image_client = image_client
    app.state.catalog_client = catalog_client
    app.state.executor = RunExecutor(runs, storage, image_client)

    # Allow cross-origin requests so the frontend can be served from a
    # different port during development.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    if settings.static_dir.is_dir():
        app.mount("/static", StaticFiles(directory=str(settings.static_dir)), name="static")
    app.mount("/uploads", StaticFiles(directory=str(settings.uploads_dir)), name="uploads")

    return app


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port, and log level from :data:`~studiolab.core.config.config`
    (``STUDIOLAB_SERVER_HOST``, ``STUDIOLAB_SERVER_PORT``,
    ``STUDIOLAB_LOG_LEVEL``).  Defaults to ``0.0.0.0:7860``.

    This function is registered as the ``studiolab`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("Starting server on %s:%s", config.server_host, config.server_port)

    uvicorn.run(
        "studiolab.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
