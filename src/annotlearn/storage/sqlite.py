"""SQLite storage backend for annotlearn.

Implements the RecordStore contract using a SQLite database. Each
operation opens its own connection, so the store can be shared between
worker threads.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence

from annotlearn.constants import INITIAL_WATERMARK
from annotlearn.exceptions import RecordNotFoundError, StoreError
from annotlearn.models import (
    Annotation,
    AnnotationTarget,
    Model,
    ModelFamily,
    Record,
    TrainingStats,
)
from annotlearn.storage.base import RecordStore

logger = logging.getLogger(__name__)

# Schema version for migrations
SCHEMA_VERSION = 1

# SQL schema
SCHEMA_SQL = """
-- Enable foreign keys
PRAGMA foreign_keys = ON;

-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Records (free text plus curated annotations)
CREATE TABLE IF NOT EXISTS records (
    record_id           INTEGER PRIMARY KEY AUTOINCREMENT,
    schema_uri          TEXT,
    text                TEXT NOT NULL DEFAULT '',
    curated             BOOLEAN DEFAULT TRUE,

    -- JSON list of block ids; NULL until computed
    fingerprint         TEXT,

    updated_at          TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_records_curated ON records(curated);

CREATE TABLE IF NOT EXISTS annotations (
    annotation_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    record_id           INTEGER NOT NULL REFERENCES records(record_id) ON DELETE CASCADE,
    prop_uri            TEXT NOT NULL,
    value_uri           TEXT NOT NULL,
    group_nest          TEXT NOT NULL DEFAULT '[]'
);

CREATE INDEX IF NOT EXISTS idx_annotations_record ON annotations(record_id);

-- Text blocks (grows monotonically)
CREATE TABLE IF NOT EXISTS text_blocks (
    block_id            INTEGER PRIMARY KEY AUTOINCREMENT,
    block               TEXT UNIQUE NOT NULL
);

-- Suggestible (property, value) pairs
CREATE TABLE IF NOT EXISTS annotation_targets (
    target              INTEGER PRIMARY KEY,
    prop_uri            TEXT NOT NULL,
    value_uri           TEXT NOT NULL,

    UNIQUE(prop_uri, value_uri)
);

-- Per-family watermark sequences
CREATE TABLE IF NOT EXISTS watermarks (
    family              TEXT PRIMARY KEY,
    value               INTEGER NOT NULL
);

-- Published models, one per family and target
CREATE TABLE IF NOT EXISTS models (
    family              TEXT NOT NULL,
    target              INTEGER NOT NULL,
    watermark           INTEGER NOT NULL,

    -- JSON arrays; NULL for blank models
    fplist              TEXT,
    contribs            TEXT,

    calib_low           REAL DEFAULT 0.0,
    calib_high          REAL DEFAULT 0.0,
    roc_auc             REAL DEFAULT 0.0,
    is_explicit         BOOLEAN DEFAULT FALSE,
    built_at            TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

    PRIMARY KEY (family, target)
);

CREATE INDEX IF NOT EXISTS idx_models_watermark ON models(family, watermark);
"""


class SQLiteStorage(RecordStore):
    """SQLite storage backend for annotlearn.

    Provides persistent storage for records, text blocks, annotation
    targets, watermarks and models.

    Example:
        >>> storage = SQLiteStorage("./annotlearn.db")
        >>> record_id = storage.add_record(Record(record_id=0, text="binding assay"))
        >>> storage.next_watermark(ModelFamily.NLP)
        2
    """

    def __init__(self, db_path: str | Path):
        """Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file (created if not exists)
        """
        self.db_path = Path(db_path)
        self._block_lock = threading.Lock()
        self._watermark_lock = threading.Lock()
        self._ensure_schema()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connection."""
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"Database operation failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        """Ensure database schema exists and is up to date."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
        with self._connection() as conn:
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
            )
            if cursor.fetchone() is None:
                conn.executescript(SCHEMA_SQL)
                conn.execute(
                    "INSERT INTO schema_version (version) VALUES (?)",
                    [SCHEMA_VERSION],
                )
                for family in ModelFamily:
                    conn.execute(
                        "INSERT INTO watermarks (family, value) VALUES (?, ?)",
                        [family.value, INITIAL_WATERMARK],
                    )
                logger.debug(f"Created schema v{SCHEMA_VERSION} in {self.db_path}")

    # =========================================================================
    # RECORD OPERATIONS
    # =========================================================================

    def add_record(self, record: Record) -> int:
        """Insert a record with its annotations.

        The record_id on the passed object is ignored; a new id is assigned.

        Args:
            record: Record to store

        Returns:
            record_id of the new row
        """
        fingerprint = None if record.fingerprint is None else json.dumps(sorted(record.fingerprint))
        with self._connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO records (schema_uri, text, curated, fingerprint)
                VALUES (?, ?, ?, ?)
                """,
                [record.schema_uri, record.text or "", record.curated, fingerprint],
            )
            record_id = cursor.lastrowid
            self._insert_annotations(conn, record_id, record.annotations)
            return record_id

    def _insert_annotations(
        self, conn: sqlite3.Connection, record_id: int, annotations: Sequence[Annotation]
    ) -> None:
        conn.executemany(
            """
            INSERT INTO annotations (record_id, prop_uri, value_uri, group_nest)
            VALUES (?, ?, ?, ?)
            """,
            [
                [record_id, a.prop_uri, a.value_uri, json.dumps(list(a.group_nest))]
                for a in annotations
            ],
        )

    def set_annotations(self, record_id: int, annotations: Sequence[Annotation]) -> None:
        """Replace the annotations of a record.

        Raises:
            RecordNotFoundError: If the record doesn't exist
        """
        with self._connection() as conn:
            self._require_record(conn, record_id)
            conn.execute("DELETE FROM annotations WHERE record_id = ?", [record_id])
            self._insert_annotations(conn, record_id, annotations)
            conn.execute(
                "UPDATE records SET updated_at = CURRENT_TIMESTAMP WHERE record_id = ?",
                [record_id],
            )

    def set_record_text(self, record_id: int, text: str) -> None:
        """Replace a record's text and clear its fingerprint.

        Raises:
            RecordNotFoundError: If the record doesn't exist
        """
        with self._connection() as conn:
            self._require_record(conn, record_id)
            conn.execute(
                """
                UPDATE records
                SET text = ?, fingerprint = NULL, updated_at = CURRENT_TIMESTAMP
                WHERE record_id = ?
                """,
                [text or "", record_id],
            )

    def _require_record(self, conn: sqlite3.Connection, record_id: int) -> None:
        cursor = conn.execute("SELECT 1 FROM records WHERE record_id = ?", [record_id])
        if cursor.fetchone() is None:
            raise RecordNotFoundError(f"Record not found: {record_id}")

    def get_record(self, record_id: int) -> Optional[Record]:
        """Get a record with its annotations.

        Args:
            record_id: Record ID

        Returns:
            Record object or None if not found
        """
        with self._connection() as conn:
            cursor = conn.execute("SELECT * FROM records WHERE record_id = ?", [record_id])
            row = cursor.fetchone()
            if row is None:
                return None
            cursor = conn.execute(
                "SELECT * FROM annotations WHERE record_id = ? ORDER BY annotation_id",
                [record_id],
            )
            annotations = [
                Annotation(
                    prop_uri=a["prop_uri"],
                    value_uri=a["value_uri"],
                    group_nest=json.loads(a["group_nest"]),
                )
                for a in cursor.fetchall()
            ]
            return Record(
                record_id=row["record_id"],
                schema_uri=row["schema_uri"],
                text=row["text"],
                annotations=annotations,
                fingerprint=None if row["fingerprint"] is None else json.loads(row["fingerprint"]),
                curated=bool(row["curated"]),
            )

    def get_curated_record_ids(self) -> list[int]:
        with self._connection() as conn:
            cursor = conn.execute(
                "SELECT record_id FROM records WHERE curated = TRUE ORDER BY record_id"
            )
            return [row["record_id"] for row in cursor.fetchall()]

    def count_records(self) -> int:
        with self._connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM records").fetchone()[0]

    def get_records_missing_fingerprint(self) -> list[int]:
        with self._connection() as conn:
            cursor = conn.execute(
                """
                SELECT record_id FROM records
                WHERE fingerprint IS NULL AND TRIM(text) != ''
                ORDER BY record_id
                """
            )
            return [row["record_id"] for row in cursor.fetchall()]

    def set_record_fingerprint(
        self, record_id: int, fingerprint: Sequence[int], text: str
    ) -> bool:
        """Store a fingerprint (sorted, deduplicated) computed from text.

        The write only lands while the record still holds that text and has
        no fingerprint, so an edit made during calculation keeps the record
        pending.

        Args:
            record_id: Record to update
            fingerprint: Block ids
            text: Text the fingerprint was computed from

        Returns:
            True if stored, False if the record changed underneath

        Raises:
            RecordNotFoundError: If the record doesn't exist
        """
        value = json.dumps(sorted({int(fp) for fp in fingerprint}))
        with self._connection() as conn:
            cursor = conn.execute(
                """
                UPDATE records SET fingerprint = ?
                WHERE record_id = ? AND fingerprint IS NULL AND text = ?
                """,
                [value, record_id, text],
            )
            if cursor.rowcount == 0:
                self._require_record(conn, record_id)
                return False
        return True

    # =========================================================================
    # TEXT BLOCK OPERATIONS
    # =========================================================================

    def get_or_create_block_id(self, block: str) -> int:
        """Get or create the fingerprint id of a text block.

        Args:
            block: Text block as produced by the extractor

        Returns:
            block_id for the text block
        """
        with self._block_lock, self._connection() as conn:
            cursor = conn.execute("SELECT block_id FROM text_blocks WHERE block = ?", [block])
            row = cursor.fetchone()
            if row:
                return row["block_id"]

            cursor = conn.execute("INSERT INTO text_blocks (block) VALUES (?)", [block])
            return cursor.lastrowid

    def count_blocks(self) -> int:
        with self._connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM text_blocks").fetchone()[0]

    # =========================================================================
    # ANNOTATION TARGET OPERATIONS
    # =========================================================================

    def get_annotation_targets(self) -> list[AnnotationTarget]:
        with self._connection() as conn:
            cursor = conn.execute("SELECT * FROM annotation_targets ORDER BY target")
            return [
                AnnotationTarget(
                    target=row["target"],
                    prop_uri=row["prop_uri"],
                    value_uri=row["value_uri"],
                )
                for row in cursor.fetchall()
            ]

    def add_annotation_target(self, target: int, prop_uri: str, value_uri: str) -> None:
        """Register a new annotation target.

        Raises:
            StoreError: If the id or the (property, value) pair already exists
        """
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO annotation_targets (target, prop_uri, value_uri) VALUES (?, ?, ?)",
                [target, prop_uri, value_uri],
            )

    # =========================================================================
    # WATERMARK OPERATIONS
    # =========================================================================

    def get_watermark(self, family: ModelFamily) -> int:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT value FROM watermarks WHERE family = ?", [ModelFamily(family).value]
            ).fetchone()
            return row["value"] if row else INITIAL_WATERMARK

    def next_watermark(self, family: ModelFamily) -> int:
        """Advance the family watermark.

        Args:
            family: Model family

        Returns:
            The new watermark
        """
        family = ModelFamily(family)
        with self._watermark_lock, self._connection() as conn:
            conn.execute(
                """
                INSERT INTO watermarks (family, value) VALUES (?, ?)
                ON CONFLICT(family) DO UPDATE SET value = value + 1
                """,
                [family.value, INITIAL_WATERMARK + 1],
            )
            row = conn.execute(
                "SELECT value FROM watermarks WHERE family = ?", [family.value]
            ).fetchone()
            return row["value"]

    # =========================================================================
    # MODEL OPERATIONS
    # =========================================================================

    def get_model_watermark(self, family: ModelFamily, target: int) -> int:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT watermark FROM models WHERE family = ? AND target = ?",
                [ModelFamily(family).value, target],
            ).fetchone()
            return row["watermark"] if row else 0

    def group_by_watermarks(self, family: ModelFamily) -> dict[int, list[int]]:
        """Stored targets grouped by watermark.

        Returns:
            Dict of watermark -> targets, both in ascending order
        """
        groups: dict[int, list[int]] = {}
        with self._connection() as conn:
            cursor = conn.execute(
                "SELECT target, watermark FROM models WHERE family = ? ORDER BY watermark, target",
                [ModelFamily(family).value],
            )
            for row in cursor.fetchall():
                groups.setdefault(row["watermark"], []).append(row["target"])
        return groups

    def get_model(self, family: ModelFamily, target: int) -> Optional[Model]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM models WHERE family = ? AND target = ?",
                [ModelFamily(family).value, target],
            ).fetchone()
            if row is None:
                return None
            return self._row_to_model(row)

    def submit_model(self, family: ModelFamily, model: Model) -> None:
        """Insert or replace the model for (family, target)."""
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO models (
                    family, target, watermark, fplist, contribs,
                    calib_low, calib_high, roc_auc, is_explicit
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(family, target) DO UPDATE SET
                    watermark = excluded.watermark,
                    fplist = excluded.fplist,
                    contribs = excluded.contribs,
                    calib_low = excluded.calib_low,
                    calib_high = excluded.calib_high,
                    roc_auc = excluded.roc_auc,
                    is_explicit = excluded.is_explicit,
                    built_at = CURRENT_TIMESTAMP
                """,
                [
                    ModelFamily(family).value,
                    model.target,
                    model.watermark,
                    None if model.fplist is None else json.dumps(model.fplist),
                    None if model.contribs is None else json.dumps(model.contribs),
                    model.calib_low,
                    model.calib_high,
                    model.roc_auc,
                    model.is_explicit,
                ],
            )

    def count_models(self, family: ModelFamily, include_blank: bool = True) -> int:
        sql = "SELECT COUNT(*) FROM models WHERE family = ?"
        if not include_blank:
            sql += " AND fplist IS NOT NULL"
        with self._connection() as conn:
            return conn.execute(sql, [ModelFamily(family).value]).fetchone()[0]

    def _row_to_model(self, row: sqlite3.Row) -> Model:
        return Model(
            target=row["target"],
            watermark=row["watermark"],
            fplist=None if row["fplist"] is None else json.loads(row["fplist"]),
            contribs=None if row["contribs"] is None else json.loads(row["contribs"]),
            calib_low=row["calib_low"],
            calib_high=row["calib_high"],
            roc_auc=row["roc_auc"],
            is_explicit=bool(row["is_explicit"]),
        )

    # =========================================================================
    # STATISTICS
    # =========================================================================

    def get_stats(self) -> TrainingStats:
        """Get a summary of the training state."""
        with self._connection() as conn:
            total = conn.execute("SELECT COUNT(*) FROM records").fetchone()[0]
            curated = conn.execute(
                "SELECT COUNT(*) FROM records WHERE curated = TRUE"
            ).fetchone()[0]
            targets = conn.execute("SELECT COUNT(*) FROM annotation_targets").fetchone()[0]
            blocks = conn.execute("SELECT COUNT(*) FROM text_blocks").fetchone()[0]
            watermarks = {
                row["family"]: row["value"]
                for row in conn.execute("SELECT family, value FROM watermarks")
            }
            models = {
                row["family"]: row["n"]
                for row in conn.execute(
                    "SELECT family, COUNT(*) AS n FROM models GROUP BY family"
                )
            }

        return TrainingStats(
            total_records=total,
            curated_records=curated,
            missing_fingerprints=len(self.get_records_missing_fingerprint()),
            annotation_targets=targets,
            text_blocks=blocks,
            watermarks=watermarks,
            models=models,
        )
