"""Prompt template storage.

A template is an ordered chain of prompt steps.  Each step names the model,
aspect ratio, output size, and temperature to generate with; missing values
fall back to the defaults in :mod:`studiolab.core.constants`.

Step prompts may reference ``{{product}}`` or ``{{products}}``; the run
executor replaces either placeholder with a description of the input set's
catalog products.
"""

from __future__ import annotations

import logging
import sqlite3

from studiolab.core.constants import (
    DEFAULT_ASPECT_RATIO,
    DEFAULT_IMAGE_SIZE,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
)
from studiolab.core.database import Database, new_id, utc_now

logger = logging.getLogger(__name__)


def normalize_steps(steps: list[dict]) -> list[dict]:
    """Fill step defaults and resolve the order of each step.

    A step without an explicit ``order`` takes its position in *steps*.

    Args:
        steps: Raw step dictionaries as submitted by the client

    Returns:
        New step dictionaries with every field populated, sorted by order

    Raises:
        ValueError: If *steps* is empty or a step has a blank prompt
    """
    if not steps:
        raise ValueError("At least one step is required")

    normalized = []
    for index, step in enumerate(steps):
        prompt = step.get("prompt") or ""
        if not prompt.strip():
            raise ValueError(f"Step {index + 1} has an empty prompt")

        order = step.get("order")
        temperature = step.get("temperature")
        normalized.append(
            {
                "order": index if order is None else order,
                "prompt": prompt,
                "model": step.get("model") or DEFAULT_MODEL,
                "aspect_ratio": step.get("aspect_ratio") or DEFAULT_ASPECT_RATIO,
                "image_size": step.get("image_size") or DEFAULT_IMAGE_SIZE,
                "temperature": DEFAULT_TEMPERATURE if temperature is None else temperature,
            }
        )

    return sorted(normalized, key=lambda s: s["order"])


def _step_dict(row: sqlite3.Row) -> dict:
    return {
        "id": row["id"],
        "template_id": row["template_id"],
        "order": row["step_order"],
        "prompt": row["prompt"],
        "model": row["model"],
        "aspect_ratio": row["aspect_ratio"],
        "image_size": row["image_size"],
        "temperature": row["temperature"],
    }


def load_steps(conn: sqlite3.Connection, template_id: str) -> list[dict]:
    """Return the steps of a template in execution order."""
    return [
        _step_dict(row)
        for row in conn.execute(
            "SELECT * FROM prompt_steps WHERE template_id = ? ORDER BY step_order, rowid",
            (template_id,),
        )
    ]


def _insert_steps(conn: sqlite3.Connection, template_id: str, steps: list[dict]) -> None:
    conn.executemany(
        """
        INSERT INTO prompt_steps
            (id, template_id, step_order, prompt, model, aspect_ratio, image_size, temperature)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            (
                new_id(),
                template_id,
                step["order"],
                step["prompt"],
                step["model"],
                step["aspect_ratio"],
                step["image_size"],
                step["temperature"],
            )
            for step in steps
        ],
    )


def fetch_template(conn: sqlite3.Connection, template_id: str) -> dict | None:
    """Load one template with its ordered steps on an open connection."""
    row = conn.execute("SELECT * FROM prompt_templates WHERE id = ?", (template_id,)).fetchone()
    if row is None:
        return None
    template = dict(row)
    template["steps"] = load_steps(conn, template_id)
    return template


class TemplateStore:
    """CRUD operations for prompt templates and their steps."""

    def __init__(self, database: Database):
        self.database = database

    def list_templates(self) -> list[dict]:
        """Return every template newest first, with ordered steps and ``run_count``."""
        with self.database.connect() as conn:
            rows = conn.execute(
                """
                SELECT t.*, (SELECT COUNT(*) FROM runs r WHERE r.template_id = t.id) AS run_count
                FROM prompt_templates t
                ORDER BY t.created_at DESC, t.rowid DESC
                """
            ).fetchall()
            templates = []
            for row in rows:
                template = dict(row)
                template["steps"] = load_steps(conn, template["id"])
                templates.append(template)
            return templates

    def get_template(self, template_id: str) -> dict | None:
        """Return one template with its steps and ten most recent runs."""
        with self.database.connect() as conn:
            template = fetch_template(conn, template_id)
            if template is None:
                return None

            template["runs"] = [
                {
                    "id": row["id"],
                    "status": row["status"],
                    "error": row["error"],
                    "created_at": row["created_at"],
                    "input_set": {"id": row["input_set_id"], "name": row["input_set_name"]},
                    "result_count": row["result_count"],
                }
                for row in conn.execute(
                    """
                    SELECT r.*, s.name AS input_set_name,
                           (SELECT COUNT(*) FROM run_results rr WHERE rr.run_id = r.id)
                               AS result_count
                    FROM runs r JOIN input_sets s ON s.id = r.input_set_id
                    WHERE r.template_id = ?
                    ORDER BY r.created_at DESC, r.rowid DESC
                    LIMIT 10
                    """,
                    (template_id,),
                )
            ]
            return template

    def create_template(
        self,
        name: str,
        steps: list[dict],
        description: str | None = None,
    ) -> dict:
        """Create a template with at least one step.

        Raises:
            ValueError: If the name is blank or there are no steps
        """
        if not name or not name.strip():
            raise ValueError("Name is required")
        normalized = normalize_steps(steps)

        template_id = new_id()
        now = utc_now()
        with self.database.connect() as conn:
            conn.execute(
                """
                INSERT INTO prompt_templates (id, name, description, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (template_id, name.strip(), description, now, now),
            )
            _insert_steps(conn, template_id, normalized)
            template = fetch_template(conn, template_id)

        logger.info("Created template %s with %d steps", template_id, len(normalized))
        return template

    def update_template(
        self,
        template_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        steps: list[dict] | None = None,
        clear_description: bool = False,
    ) -> dict | None:
        """Update a template, replacing all of its steps when *steps* is given.

        Returns:
            The updated template, or ``None`` if it does not exist

        Raises:
            ValueError: If a blank name or an empty step list is given
        """
        if name is not None and not name.strip():
            raise ValueError("Name must not be blank")
        normalized = normalize_steps(steps) if steps is not None else None

        with self.database.connect() as conn:
            existing = conn.execute(
                "SELECT * FROM prompt_templates WHERE id = ?", (template_id,)
            ).fetchone()
            if existing is None:
                return None

            if normalized is not None:
                conn.execute("DELETE FROM prompt_steps WHERE template_id = ?", (template_id,))
                _insert_steps(conn, template_id, normalized)

            new_name = name.strip() if name is not None else existing["name"]
            if clear_description:
                new_description = None
            elif description is not None:
                new_description = description
            else:
                new_description = existing["description"]

            conn.execute(
                """
                UPDATE prompt_templates
                SET name = ?, description = ?, updated_at = ?
                WHERE id = ?
                """,
                (new_name, new_description, utc_now(), template_id),
            )
            return fetch_template(conn, template_id)

    def delete_template(self, template_id: str) -> bool:
        """Delete a template along with its steps and runs."""
        with self.database.connect() as conn:
            cursor = conn.execute("DELETE FROM prompt_templates WHERE id = ?", (template_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted template: {template_id}")
        return deleted
