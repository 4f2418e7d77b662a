"""JSON and CSV export of runs and reviewed results.

Two exports exist:

- **Run export**: one run with its input set, template steps, and every
  step result.
- **Rated results export**: every result that has a rating, across all runs.

Output image paths are stored relative to the application (for example
``/api/outputs/<run>/<file>``); exports turn them into absolute URLs with
the supplied base URL so a downloaded file still links to its images.
"""

from __future__ import annotations

import csv
import io
from datetime import datetime, timezone

RUN_CSV_HEADER = ["Step", "Output Image", "Rating", "Tags", "Notes", "Created At"]
RESULTS_CSV_HEADER = [
    "ID",
    "Run ID",
    "Step",
    "Output Image",
    "Rating",
    "Tags",
    "Notes",
    "Input Set",
    "Template",
    "Created At",
]


def to_full_url(base_url: str, path: str | None) -> str | None:
    """Make an output path absolute.

    Empty paths stay ``None``; values that are already ``http(s)`` URLs are
    returned unchanged.
    """
    if not path:
        return None
    if path.startswith(("http://", "https://")):
        return path
    base = base_url.rstrip("/")
    return f"{base}{'' if path.startswith('/') else '/'}{path}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def export_run(run: dict, base_url: str) -> dict:
    """Build the JSON export document for a single run.

    Args:
        run: Full run as returned by ``RunStore.get_run``
        base_url: Base URL for absolute image links

    Returns:
        ``{"exported_at": ..., "run": {...}}``
    """
    input_set = run["input_set"]
    template = run["template"]
    return {
        "exported_at": _now(),
        "run": {
            "id": run["id"],
            "status": run["status"],
            "error": run["error"],
            "created_at": run["created_at"],
            "input_set": {
                "name": input_set["name"],
                "image_count": len(input_set["images"]),
                "product_count": len(input_set["products"]),
                "products": [
                    {
                        "name": p["name"],
                        "category": p["category"],
                        "catalog_id": p["catalog_id"],
                    }
                    for p in input_set["products"]
                ],
            },
            "template": {
                "name": template["name"],
                "steps": [
                    {
                        "order": s["order"],
                        "prompt": s["prompt"],
                        "model": s["model"],
                        "aspect_ratio": s["aspect_ratio"],
                        "image_size": s["image_size"],
                        "temperature": s["temperature"],
                    }
                    for s in template["steps"]
                ],
            },
            "results": [
                {
                    "step_order": r["step_order"],
                    "output_image": to_full_url(base_url, r["output_image"]),
                    "rating": r["rating"],
                    "notes": r["notes"],
                    "tags": r["tags"],
                    "metadata": r["metadata"],
                    "created_at": r["created_at"],
                }
                for r in run["results"]
            ],
        },
    }


def export_rated_results(results: list[dict], base_url: str) -> dict:
    """Build the JSON export document for rated results.

    Args:
        results: Results from ``RunStore.list_results(rated_only=True)``
        base_url: Base URL for absolute image links
    """
    return {
        "exported_at": _now(),
        "total_results": len(results),
        "results": [
            {
                "id": r["id"],
                "run_id": r["run_id"],
                "step_order": r["step_order"],
                "output_image": to_full_url(base_url, r["output_image"]),
                "rating": r["rating"],
                "notes": r["notes"],
                "tags": r["tags"],
                "input_set": r["run"]["input_set"]["name"],
                "template": r["run"]["template"]["name"],
                "created_at": r["created_at"],
            }
            for r in results
        ],
    }


def _csv(header: list[str], rows: list[list]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


def run_to_csv(run: dict, base_url: str) -> str:
    """Render a run's results as CSV (tags joined with ``;``)."""
    return _csv(
        RUN_CSV_HEADER,
        [
            [
                r["step_order"],
                to_full_url(base_url, r["output_image"]) or "",
                r["rating"] if r["rating"] is not None else "",
                ";".join(r["tags"]),
                r["notes"] or "",
                r["created_at"],
            ]
            for r in run["results"]
        ],
    )


def results_to_csv(results: list[dict], base_url: str) -> str:
    """Render rated results as CSV (tags joined with ``;``)."""
    return _csv(
        RESULTS_CSV_HEADER,
        [
            [
                r["id"],
                r["run_id"],
                r["step_order"],
                to_full_url(base_url, r["output_image"]) or "",
                r["rating"] if r["rating"] is not None else "",
                ";".join(r["tags"]),
                r["notes"] or "",
                r["run"]["input_set"]["name"],
                r["run"]["template"]["name"],
                r["created_at"],
            ]
            for r in results
        ],
    )
