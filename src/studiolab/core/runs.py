"""Run and run-result storage.

A run pairs an input set with a prompt template.  Executing it (see
:mod:`studiolab.core.executor`) records one result per step: either the
public path of the generated image, or an empty path with the error kept in
the result metadata.  Results are later reviewed with a 1-5 rating, free-form
notes, and tags.

Status lifecycle::

    pending -> running -> completed
                       -> failed
"""

from __future__ import annotations

import json
import logging
import sqlite3

from studiolab.core.database import Database, load_json, new_id, utc_now
from studiolab.core.input_sets import fetch_input_set
from studiolab.core.templates import fetch_template

logger = logging.getLogger(__name__)


def result_dict(row: sqlite3.Row) -> dict:
    """Convert a ``run_results`` row into its API representation."""
    return {
        "id": row["id"],
        "run_id": row["run_id"],
        "step_order": row["step_order"],
        "output_image": row["output_image"],
        "metadata": load_json(row["metadata"], {}),
        "rating": row["rating"],
        "notes": row["notes"],
        "tags": load_json(row["tags"], []),
        "created_at": row["created_at"],
    }


def _run_dict(row: sqlite3.Row) -> dict:
    return {
        "id": row["id"],
        "input_set_id": row["input_set_id"],
        "template_id": row["template_id"],
        "status": row["status"],
        "error": row["error"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def _dedupe(tags: list[str]) -> list[str]:
    seen: list[str] = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


_SUMMARY_SELECT = """
    SELECT r.*, s.name AS input_set_name, t.name AS template_name
    FROM runs r
    JOIN input_sets s ON s.id = r.input_set_id
    JOIN prompt_templates t ON t.id = r.template_id
"""


class RunStore:
    """Persistence for runs and their per-step results."""

    def __init__(self, database: Database):
        self.database = database

    # -- Runs ---------------------------------------------------------------

    def _results_for(self, conn: sqlite3.Connection, run_id: str) -> list[dict]:
        return [
            result_dict(row)
            for row in conn.execute(
                "SELECT * FROM run_results WHERE run_id = ? ORDER BY step_order, rowid",
                (run_id,),
            )
        ]

    def _summary(self, conn: sqlite3.Connection, row: sqlite3.Row) -> dict:
        run = _run_dict(row)
        run["input_set"] = {"id": row["input_set_id"], "name": row["input_set_name"]}
        run["template"] = {"id": row["template_id"], "name": row["template_name"]}
        run["results"] = self._results_for(conn, run["id"])
        return run

    def create_run(self, input_set_id: str, template_id: str) -> dict:
        """Create a pending run.

        The caller is responsible for checking that both references exist;
        a dangling reference fails the foreign-key constraint.

        Returns:
            The run summary with an empty ``results`` list
        """
        run_id = new_id()
        now = utc_now()
        with self.database.connect() as conn:
            conn.execute(
                """
                INSERT INTO runs (id, input_set_id, template_id, status, error, created_at, updated_at)
                VALUES (?, ?, ?, 'pending', NULL, ?, ?)
                """,
                (run_id, input_set_id, template_id, now, now),
            )
            row = conn.execute(_SUMMARY_SELECT + " WHERE r.id = ?", (run_id,)).fetchone()
            run = self._summary(conn, row)

        logger.info("Created run %s (input set %s, template %s)", run_id, input_set_id, template_id)
        return run

    def list_runs(
        self,
        *,
        status: str | None = None,
        input_set_id: str | None = None,
        template_id: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        """Return runs newest first, optionally filtered.

        Each run embeds ``input_set`` and ``template`` summaries and its
        results ordered by step.  ``limit`` caps the number of runs loaded.
        """
        clauses = []
        params: list = []
        if status:
            clauses.append("r.status = ?")
            params.append(status)
        if input_set_id:
            clauses.append("r.input_set_id = ?")
            params.append(input_set_id)
        if template_id:
            clauses.append("r.template_id = ?")
            params.append(template_id)

        query = _SUMMARY_SELECT
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY r.created_at DESC, r.rowid DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self.database.connect() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._summary(conn, row) for row in rows]

    def get_run_summary(self, run_id: str) -> dict | None:
        """Return a run with input set/template summaries and its results."""
        with self.database.connect() as conn:
            row = conn.execute(_SUMMARY_SELECT + " WHERE r.id = ?", (run_id,)).fetchone()
            if row is None:
                return None
            return self._summary(conn, row)

    def get_run(self, run_id: str) -> dict | None:
        """Return a run with its full input set, template steps, and results.

        Args:
            run_id: Run UUID

        Returns:
            The run dictionary, or ``None`` if it does not exist
        """
        with self.database.connect() as conn:
            row = conn.execute("SELECT * FROM runs WHERE id = ?", (run_id,)).fetchone()
            if row is None:
                return None

            run = _run_dict(row)
            run["input_set"] = fetch_input_set(conn, row["input_set_id"])
            run["template"] = fetch_template(conn, row["template_id"])
            run["results"] = self._results_for(conn, run_id)
            return run

    def run_ids(
        self,
        *,
        input_set_id: str | None = None,
        template_id: str | None = None,
    ) -> list[str]:
        """Return the ids of runs that reference an input set or template."""
        with self.database.connect() as conn:
            rows = conn.execute(
                """
                SELECT id FROM runs
                WHERE (? IS NOT NULL AND input_set_id = ?)
                   OR (? IS NOT NULL AND template_id = ?)
                """,
                (input_set_id, input_set_id, template_id, template_id),
            ).fetchall()
            return [row["id"] for row in rows]

    def set_status(self, run_id: str, status: str, error: str | None = None) -> None:
        """Update the status (and error message) of a run."""
        with self.database.connect() as conn:
            conn.execute(
                "UPDATE runs SET status = ?, error = ?, updated_at = ? WHERE id = ?",
                (status, error, utc_now(), run_id),
            )
        logger.debug("Run %s -> %s", run_id, status)

    def delete_run(self, run_id: str) -> bool:
        """Delete a run and its results.

        Returns:
            True if a row was deleted, False if the run did not exist
        """
        with self.database.connect() as conn:
            cursor = conn.execute("DELETE FROM runs WHERE id = ?", (run_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted run: {run_id}")
        return deleted

    # -- Results ------------------------------------------------------------

    def clear_results(self, run_id: str) -> int:
        """Delete every result of a run, returning how many were removed."""
        with self.database.connect() as conn:
            cursor = conn.execute("DELETE FROM run_results WHERE run_id = ?", (run_id,))
            return cursor.rowcount

    def add_result(
        self,
        run_id: str,
        step_order: int,
        output_image: str,
        metadata: dict,
    ) -> dict:
        """Persist the outcome of one step.

        Args:
            run_id: Run the step belongs to
            step_order: Order of the step within its template
            output_image: Public image path, or ``""`` for a failed step
            metadata: Generation details, or ``{"error": ...}`` on failure

        Returns:
            The stored result
        """
        result_id = new_id()
        with self.database.connect() as conn:
            conn.execute(
                """
                INSERT INTO run_results
                    (id, run_id, step_order, output_image, metadata, rating, notes, tags, created_at)
                VALUES (?, ?, ?, ?, ?, NULL, NULL, '[]', ?)
                """,
                (result_id, run_id, step_order, output_image, json.dumps(metadata), utc_now()),
            )
            row = conn.execute("SELECT * FROM run_results WHERE id = ?", (result_id,)).fetchone()
            return result_dict(row)

    def list_results(
        self,
        *,
        min_rating: int | None = None,
        max_rating: int | None = None,
        tags: list[str] | None = None,
        run_id: str | None = None,
        search: str | None = None,
        rated_only: bool = False,
    ) -> list[dict]:
        """Return results newest first, each embedding its run.

        Args:
            min_rating: Keep results rated at least this value
            max_rating: Keep results rated at most this value
            tags: Keep results carrying ANY of these tags
            run_id: Keep results of a single run
            search: Case-insensitive substring of the input set name
            rated_only: Keep only results that have a rating

        Returns:
            Result dictionaries with a ``run`` key holding the run status and
            its ``input_set`` / ``template`` summaries
        """
        clauses = []
        params: list = []
        if run_id:
            clauses.append("rr.run_id = ?")
            params.append(run_id)
        if min_rating is not None:
            clauses.append("rr.rating >= ?")
            params.append(min_rating)
        if max_rating is not None:
            clauses.append("rr.rating <= ?")
            params.append(max_rating)
        if rated_only:
            clauses.append("rr.rating IS NOT NULL")
        if search and search.strip():
            clauses.append("LOWER(s.name) LIKE ?")
            params.append(f"%{search.strip().lower()}%")

        query = """
            SELECT rr.*, r.status AS run_status, r.created_at AS run_created_at,
                   r.input_set_id, r.template_id,
                   s.name AS input_set_name, t.name AS template_name
            FROM run_results rr
            JOIN runs r ON r.id = rr.run_id
            JOIN input_sets s ON s.id = r.input_set_id
            JOIN prompt_templates t ON t.id = r.template_id
        """
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY rr.created_at DESC, rr.rowid DESC"

        with self.database.connect() as conn:
            rows = conn.execute(query, params).fetchall()

        wanted = set(tags or [])
        results = []
        for row in rows:
            result = result_dict(row)
            # Tags live in a JSON column, so tag matching happens here.
            if wanted and not wanted.intersection(result["tags"]):
                continue
            result["run"] = {
                "id": row["run_id"],
                "status": row["run_status"],
                "created_at": row["run_created_at"],
                "input_set": {"id": row["input_set_id"], "name": row["input_set_name"]},
                "template": {"id": row["template_id"], "name": row["template_name"]},
            }
            results.append(result)
        return results

    def get_result(self, result_id: str) -> dict | None:
        """Return one result with its run summary, or ``None``."""
        with self.database.connect() as conn:
            row = conn.execute(
                """
                SELECT rr.*, r.status AS run_status, r.input_set_id, r.template_id,
                       s.name AS input_set_name, t.name AS template_name
                FROM run_results rr
                JOIN runs r ON r.id = rr.run_id
                JOIN input_sets s ON s.id = r.input_set_id
                JOIN prompt_templates t ON t.id = r.template_id
                WHERE rr.id = ?
                """,
                (result_id,),
            ).fetchone()
            if row is None:
                return None

        result = result_dict(row)
        result["run"] = {
            "id": row["run_id"],
            "status": row["run_status"],
            "input_set": {"id": row["input_set_id"], "name": row["input_set_name"]},
            "template": {"id": row["template_id"], "name": row["template_name"]},
        }
        return result

    def update_result(self, result_id: str, changes: dict) -> dict | None:
        """Apply a review update to a result.

        Only the keys present in *changes* are written, so ``{"rating": None}``
        clears the rating while leaving notes and tags untouched.

        Args:
            result_id: Result UUID
            changes: Any of ``rating``, ``notes``, and ``tags``

        Returns:
            The updated result, or ``None`` if it does not exist

        Raises:
            ValueError: If the rating is outside 1-5
        """
        assignments = []
        params: list = []
        if "rating" in changes:
            rating = changes["rating"]
            if rating is not None and not 1 <= rating <= 5:
                raise ValueError("Rating must be between 1 and 5")
            assignments.append("rating = ?")
            params.append(rating)
        if "notes" in changes:
            assignments.append("notes = ?")
            params.append(changes["notes"])
        if "tags" in changes:
            assignments.append("tags = ?")
            params.append(json.dumps(_dedupe(changes["tags"] or [])))

        with self.database.connect() as conn:
            if assignments:
                conn.execute(
                    f"UPDATE run_results SET {', '.join(assignments)} WHERE id = ?",
                    (*params, result_id),
                )
            row = conn.execute("SELECT * FROM run_results WHERE id = ?", (result_id,)).fetchone()
            return result_dict(row) if row is not None else None

    def rating_stats(self) -> tuple[int, float]:
        """Return ``(rated_count, average_rating)`` over all rated results."""
        with self.database.connect() as conn:
            row = conn.execute(
                "SELECT COUNT(rating), AVG(rating) FROM run_results WHERE rating IS NOT NULL"
            ).fetchone()
        count = row[0] or 0
        return count, float(row[1]) if count else 0.0
