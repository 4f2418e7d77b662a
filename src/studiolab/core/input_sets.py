"""Input set storage: named collections of reference images and products.

An input set is what a run feeds into the first step of a prompt chain.
Uploaded images are referenced by their public ``/uploads/...`` path, and
catalog products are snapshotted (name, category, image URL, and the raw
catalog metadata) so later catalog changes never alter an existing set.
"""

from __future__ import annotations

import json
import logging
import sqlite3

from studiolab.core.database import Database, load_json, new_id, utc_now

logger = logging.getLogger(__name__)


def _image_dict(row: sqlite3.Row) -> dict:
    return {
        "id": row["id"],
        "input_set_id": row["input_set_id"],
        "filename": row["filename"],
        "path": row["path"],
        "mime_type": row["mime_type"],
        "created_at": row["created_at"],
    }


def _product_dict(row: sqlite3.Row) -> dict:
    return {
        "id": row["id"],
        "input_set_id": row["input_set_id"],
        "catalog_id": row["catalog_id"],
        "name": row["name"],
        "category": row["category"],
        "image_url": row["image_url"],
        "metadata": load_json(row["metadata"], {}),
        "created_at": row["created_at"],
    }


def _insert_images(conn: sqlite3.Connection, input_set_id: str, images: list[dict]) -> None:
    now = utc_now()
    conn.executemany(
        """
        INSERT INTO images (id, input_set_id, filename, path, mime_type, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        [
            (new_id(), input_set_id, img["filename"], img["path"], img["mime_type"], now)
            for img in images
        ],
    )


def _insert_products(conn: sqlite3.Connection, input_set_id: str, products: list[dict]) -> None:
    now = utc_now()
    conn.executemany(
        """
        INSERT INTO products
            (id, input_set_id, catalog_id, name, category, image_url, metadata, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            (
                new_id(),
                input_set_id,
                str(prod["catalog_id"]),
                prod["name"],
                prod.get("category") or "",
                prod.get("image_url"),
                json.dumps(prod.get("metadata") or {}),
                now,
            )
            for prod in products
        ],
    )


def _load_children(conn: sqlite3.Connection, input_set: dict) -> dict:
    input_set["images"] = [
        _image_dict(row)
        for row in conn.execute(
            "SELECT * FROM images WHERE input_set_id = ? ORDER BY created_at, rowid",
            (input_set["id"],),
        )
    ]
    input_set["products"] = [
        _product_dict(row)
        for row in conn.execute(
            "SELECT * FROM products WHERE input_set_id = ? ORDER BY created_at, rowid",
            (input_set["id"],),
        )
    ]
    return input_set


def fetch_input_set(conn: sqlite3.Connection, input_set_id: str) -> dict | None:
    """Load one input set with its images and products on an open connection."""
    row = conn.execute("SELECT * FROM input_sets WHERE id = ?", (input_set_id,)).fetchone()
    if row is None:
        return None
    return _load_children(conn, dict(row))


class InputSetStore:
    """CRUD operations for input sets and their images and products."""

    def __init__(self, database: Database):
        self.database = database

    def list_input_sets(self) -> list[dict]:
        """Return every input set, newest first.

        Each entry carries its ``images``, ``products``, and ``run_count``.
        """
        with self.database.connect() as conn:
            rows = conn.execute(
                """
                SELECT s.*, (SELECT COUNT(*) FROM runs r WHERE r.input_set_id = s.id) AS run_count
                FROM input_sets s
                ORDER BY s.created_at DESC, s.rowid DESC
                """
            ).fetchall()
            return [_load_children(conn, dict(row)) for row in rows]

    def get_input_set(self, input_set_id: str) -> dict | None:
        """Return one input set with its ten most recent runs.

        Args:
            input_set_id: Input set UUID

        Returns:
            The input set dictionary, or ``None`` if it does not exist
        """
        with self.database.connect() as conn:
            input_set = fetch_input_set(conn, input_set_id)
            if input_set is None:
                return None

            input_set["runs"] = [
                {
                    "id": row["id"],
                    "status": row["status"],
                    "error": row["error"],
                    "created_at": row["created_at"],
                    "template": {"id": row["template_id"], "name": row["template_name"]},
                    "result_count": row["result_count"],
                }
                for row in conn.execute(
                    """
                    SELECT r.*, t.name AS template_name,
                           (SELECT COUNT(*) FROM run_results rr WHERE rr.run_id = r.id)
                               AS result_count
                    FROM runs r JOIN prompt_templates t ON t.id = r.template_id
                    WHERE r.input_set_id = ?
                    ORDER BY r.created_at DESC, r.rowid DESC
                    LIMIT 10
                    """,
                    (input_set_id,),
                )
            ]
            return input_set

    def create_input_set(
        self,
        name: str,
        images: list[dict] | None = None,
        products: list[dict] | None = None,
    ) -> dict:
        """Create an input set with its initial images and products.

        Args:
            name: Display name (must not be blank)
            images: Dicts with ``filename``, ``path``, and ``mime_type``
            products: Dicts with ``catalog_id``, ``name``, ``category``, and
                optional ``image_url`` / ``metadata``

        Returns:
            The created input set

        Raises:
            ValueError: If the name is blank
        """
        if not name or not name.strip():
            raise ValueError("Name is required")

        input_set_id = new_id()
        now = utc_now()
        with self.database.connect() as conn:
            conn.execute(
                "INSERT INTO input_sets (id, name, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (input_set_id, name.strip(), now, now),
            )
            _insert_images(conn, input_set_id, images or [])
            _insert_products(conn, input_set_id, products or [])
            input_set = fetch_input_set(conn, input_set_id)

        logger.info(
            "Created input set %s (%d images, %d products)",
            input_set_id,
            len(images or []),
            len(products or []),
        )
        return input_set

    def update_input_set(
        self,
        input_set_id: str,
        *,
        name: str | None = None,
        images: list[dict] | None = None,
        products: list[dict] | None = None,
        remove_image_ids: list[str] | None = None,
        remove_product_ids: list[str] | None = None,
    ) -> dict | None:
        """Edit an input set in a single transaction.

        Removals only touch images and products that belong to this set;
        ids from other sets are ignored.  New images and products are
        appended.

        Returns:
            The updated input set, or ``None`` if it does not exist

        Raises:
            ValueError: If a blank name is given
        """
        if name is not None and not name.strip():
            raise ValueError("Name must not be blank")

        with self.database.connect() as conn:
            exists = conn.execute(
                "SELECT 1 FROM input_sets WHERE id = ?", (input_set_id,)
            ).fetchone()
            if exists is None:
                return None

            if remove_image_ids:
                conn.executemany(
                    "DELETE FROM images WHERE id = ? AND input_set_id = ?",
                    [(image_id, input_set_id) for image_id in remove_image_ids],
                )
            if remove_product_ids:
                conn.executemany(
                    "DELETE FROM products WHERE id = ? AND input_set_id = ?",
                    [(product_id, input_set_id) for product_id in remove_product_ids],
                )

            _insert_images(conn, input_set_id, images or [])
            _insert_products(conn, input_set_id, products or [])

            if name is not None:
                conn.execute(
                    "UPDATE input_sets SET name = ?, updated_at = ? WHERE id = ?",
                    (name.strip(), utc_now(), input_set_id),
                )
            else:
                conn.execute(
                    "UPDATE input_sets SET updated_at = ? WHERE id = ?",
                    (utc_now(), input_set_id),
                )

            return fetch_input_set(conn, input_set_id)

    def delete_input_set(self, input_set_id: str) -> bool:
        """Delete an input set along with its images, products, and runs.

        Returns:
            True if a row was deleted, False if the set did not exist
        """
        with self.database.connect() as conn:
            cursor = conn.execute("DELETE FROM input_sets WHERE id = ?", (input_set_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted input set: {input_set_id}")
        return deleted
