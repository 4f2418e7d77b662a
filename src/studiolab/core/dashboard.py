"""Dashboard aggregation: entity counts, average rating, and recent runs."""

from __future__ import annotations

from studiolab.core.database import Database
from studiolab.core.runs import RunStore

RECENT_RUN_LIMIT = 5


def dashboard_summary(database: Database, runs: RunStore) -> dict:
    """Collect the figures shown on the dashboard.

    Args:
        database: Lab database (for table counts)
        runs: Run store (for ratings and recent runs)

    Returns:
        Dictionary with ``stats`` (``input_sets``, ``prompts``, ``runs``,
        ``rated_results``, ``avg_rating``) and ``recent_runs`` (the five
        newest runs with input set/template names and a result count)
    """
    rated_count, avg_rating = runs.rating_stats()

    recent = []
    for run in runs.list_runs(limit=RECENT_RUN_LIMIT):
        recent.append(
            {
                "id": run["id"],
                "status": run["status"],
                "created_at": run["created_at"],
                "input_set": run["input_set"],
                "template": run["template"],
                "result_count": len(run["results"]),
            }
        )

    return {
        "stats": {
            "input_sets": database.count("input_sets"),
            "prompts": database.count("prompt_templates"),
            "runs": database.count("runs"),
            "rated_results": rated_count,
            "avg_rating": round(avg_rating, 1),
        },
        "recent_runs": recent,
    }
