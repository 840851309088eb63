"""
Database - Database operations for the Carer Application Portal

This module handles database initialization, connection management,
migrations and the record helpers used by the API routes.
"""

import json
import sqlite3
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

# Database path (relative to project root)
DB_PATH = Path(__file__).parent.parent / "applications.db"

APPLICANT_FIELDS = (
    'first_name', 'middle_name', 'last_name', 'email', 'phone',
    'address', 'city', 'postcode', 'position_applied_for',
)

EMPLOYMENT_FIELDS = (
    'employer', 'employer_address', 'employer_phone', 'position',
    'start_date', 'end_date', 'is_current', 'duties', 'reason_for_leaving',
    'reference_name', 'reference_email', 'reference_phone',
    'worked_with_vulnerable_people',
)

BOOLEAN_EMPLOYMENT_FIELDS = ('is_current', 'worked_with_vulnerable_people')

# Reference lifecycle, in order
REFERENCE_STATUSES = ('pending', 'requested', 'received', 'verified')


def _resolve_path(db_path=None) -> Path:
    if db_path is not None:
        return Path(db_path)
    if has_app_context():
        return Path(current_app.config.get("DATABASE_PATH", DB_PATH))
    return DB_PATH


def init_db(db_path=None):
    """
    Initialize SQLite database with required tables.

    Creates tables for:
    - applicants: One row per application, with status and policy overrides
    - employment_entries: Employment history entries
    - employment_gaps: Applicant explanations for gaps, keyed by date pair
    - required_references: The resolved set of referees to contact
    - application_progress: Saved stepper position per applicant

    Uses WAL (Write-Ahead Logging) mode for better concurrency.
    """
    conn = sqlite3.connect(_resolve_path(db_path), timeout=30.0)

    conn.execute("PRAGMA journal_mode=WAL")

    conn.execute("""
        CREATE TABLE IF NOT EXISTS applicants (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            first_name TEXT NOT NULL,
            middle_name TEXT,
            last_name TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            phone TEXT,
            address TEXT,
            city TEXT,
            postcode TEXT,
            position_applied_for TEXT,
            status TEXT DEFAULT 'in_progress',
            created_at TEXT,
            updated_at TEXT,
            completed_at TEXT
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS employment_entries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            applicant_id INTEGER NOT NULL,
            employer TEXT NOT NULL,
            employer_address TEXT,
            employer_phone TEXT,
            position TEXT,
            start_date TEXT,
            end_date TEXT,
            is_current INTEGER DEFAULT 0,
            duties TEXT,
            reason_for_leaving TEXT,
            reference_name TEXT,
            reference_email TEXT,
            reference_phone TEXT,
            worked_with_vulnerable_people INTEGER DEFAULT 0,
            created_at TEXT,
            updated_at TEXT,
            FOREIGN KEY (applicant_id) REFERENCES applicants(id)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS employment_gaps (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            applicant_id INTEGER NOT NULL,
            start_date TEXT NOT NULL,
            end_date TEXT NOT NULL,
            explanation TEXT NOT NULL DEFAULT '',
            updated_at TEXT,
            UNIQUE (applicant_id, start_date, end_date),
            FOREIGN KEY (applicant_id) REFERENCES applicants(id)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS required_references (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            applicant_id INTEGER NOT NULL,
            employment_entry_id INTEGER,
            employer TEXT,
            reference_name TEXT,
            reference_email TEXT,
            reference_phone TEXT,
            status TEXT DEFAULT 'pending',
            requested_at TEXT,
            received_at TEXT,
            verified_at TEXT,
            created_at TEXT,
            updated_at TEXT,
            FOREIGN KEY (applicant_id) REFERENCES applicants(id),
            FOREIGN KEY (employment_entry_id) REFERENCES employment_entries(id)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS application_progress (
            applicant_id INTEGER PRIMARY KEY,
            current_step INTEGER DEFAULT 0,
            completed_steps TEXT DEFAULT '[]',
            updated_at TEXT,
            FOREIGN KEY (applicant_id) REFERENCES applicants(id)
        )
    """)

    run_migrations(conn)

    conn.commit()
    conn.close()


def run_migrations(conn):
    """
    Run database migrations to add new columns as needed.

    Uses PRAGMA table_info() to check for missing columns and adds them
    with ALTER TABLE.

    Args:
        conn: SQLite connection
    """
    applicant_columns = {row[1] for row in conn.execute("PRAGMA table_info(applicants)").fetchall()}

    # Migration: per-applicant reference policy overrides
    if "reference_policy" not in applicant_columns:
        logger.info("Migrating database: adding 'reference_policy' column to applicants...")
        conn.execute("ALTER TABLE applicants ADD COLUMN reference_policy TEXT")

    # Migration: reference lifecycle timestamps
    reference_columns = {row[1] for row in conn.execute("PRAGMA table_info(required_references)").fetchall()}
    for column in ("requested_at", "received_at", "verified_at", "updated_at"):
        if reference_columns and column not in reference_columns:
            logger.info(f"Migrating database: adding '{column}' column to required_references...")
            conn.execute(f"ALTER TABLE required_references ADD COLUMN {column} TEXT")


def get_db(db_path=None):
    """
    Create and return a database connection with Row factory.

    Inside a Flask request the path comes from app.config['DATABASE_PATH'].

    Returns:
        sqlite3.Connection: Database connection with Row factory enabled

    Examples:
        >>> conn = get_db()
        >>> row = conn.execute("SELECT * FROM applicants WHERE id = ?", (1,)).fetchone()
        >>> print(row['email'])
    """
    conn = sqlite3.connect(_resolve_path(db_path), timeout=30.0)
    conn.row_factory = sqlite3.Row
    return conn


# ============== Applicants ==============

def _applicant_dict(row) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    applicant = dict(row)
    applicant['reference_policy'] = json.loads(applicant['reference_policy']) if applicant.get('reference_policy') else {}
    return applicant


def create_applicant(conn, data: Dict[str, Any]) -> int:
    """
    Insert a new applicant.

    Returns:
        The new applicant id

    Raises:
        sqlite3.IntegrityError: If the email is already registered
    """
    now = datetime.now().isoformat()
    values = {field: data.get(field) for field in APPLICANT_FIELDS}
    cursor = conn.execute(
        f"""
        INSERT INTO applicants ({', '.join(APPLICANT_FIELDS)}, created_at, updated_at)
        VALUES ({', '.join('?' for _ in APPLICANT_FIELDS)}, ?, ?)
        """,
        (*values.values(), now, now),
    )
    conn.commit()
    logger.info(f"Created applicant {cursor.lastrowid} ({values['email']})")
    return cursor.lastrowid


def get_applicant(conn, applicant_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute("SELECT * FROM applicants WHERE id = ?", (applicant_id,)).fetchone()
    return _applicant_dict(row)


def list_applicants(conn) -> List[Dict[str, Any]]:
    rows = conn.execute("SELECT * FROM applicants ORDER BY created_at DESC, id DESC").fetchall()
    return [_applicant_dict(row) for row in rows]


def update_applicant(conn, applicant_id: int, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Update whitelisted applicant fields; unknown keys are ignored."""
    updates = {k: v for k, v in fields.items() if k in APPLICANT_FIELDS or k in ('status', 'completed_at')}
    if updates:
        updates['updated_at'] = datetime.now().isoformat()
        assignments = ', '.join(f"{k} = ?" for k in updates)
        conn.execute(
            f"UPDATE applicants SET {assignments} WHERE id = ?",
            (*updates.values(), applicant_id),
        )
        conn.commit()
    return get_applicant(conn, applicant_id)


def save_reference_policy(conn, applicant_id: int, policy: Dict[str, bool]) -> None:
    conn.execute(
        "UPDATE applicants SET reference_policy = ?, updated_at = ? WHERE id = ?",
        (json.dumps(policy), datetime.now().isoformat(), applicant_id),
    )
    conn.commit()


# ============== Employment ==============

def _employment_dict(row) -> Dict[str, Any]:
    entry = dict(row)
    for field in BOOLEAN_EMPLOYMENT_FIELDS:
        entry[field] = bool(entry.get(field))
    return entry


def list_employment(conn, applicant_id: int) -> List[Dict[str, Any]]:
    rows = conn.execute(
        "SELECT * FROM employment_entries WHERE applicant_id = ? ORDER BY id",
        (applicant_id,),
    ).fetchall()
    return [_employment_dict(row) for row in rows]


def get_employment(conn, entry_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute("SELECT * FROM employment_entries WHERE id = ?", (entry_id,)).fetchone()
    return _employment_dict(row) if row else None


def create_employment(conn, applicant_id: int, data: Dict[str, Any]) -> int:
    now = datetime.now().isoformat()
    values = [data.get(field) for field in EMPLOYMENT_FIELDS]
    cursor = conn.execute(
        f"""
        INSERT INTO employment_entries (applicant_id, {', '.join(EMPLOYMENT_FIELDS)}, created_at, updated_at)
        VALUES (?, {', '.join('?' for _ in EMPLOYMENT_FIELDS)}, ?, ?)
        """,
        (applicant_id, *values, now, now),
    )
    conn.commit()
    logger.info(f"Added employment entry {cursor.lastrowid} for applicant {applicant_id}")
    return cursor.lastrowid


def update_employment(conn, entry_id: int, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    updates = {k: v for k, v in fields.items() if k in EMPLOYMENT_FIELDS}
    if updates:
        updates['updated_at'] = datetime.now().isoformat()
        assignments = ', '.join(f"{k} = ?" for k in updates)
        conn.execute(
            f"UPDATE employment_entries SET {assignments} WHERE id = ?",
            (*updates.values(), entry_id),
        )
        conn.commit()
    return get_employment(conn, entry_id)


def delete_employment(conn, entry_id: int) -> bool:
    cursor = conn.execute("DELETE FROM employment_entries WHERE id = ?", (entry_id,))
    conn.commit()
    return cursor.rowcount > 0


# ============== Gap explanations ==============

def list_gap_explanations(conn, applicant_id: int) -> List[Dict[str, Any]]:
    rows = conn.execute(
        "SELECT start_date, end_date, explanation FROM employment_gaps WHERE applicant_id = ? ORDER BY start_date",
        (applicant_id,),
    ).fetchall()
    return [dict(row) for row in rows]


def save_gap_explanations(conn, applicant_id: int, records: Iterable[Dict[str, Any]]) -> int:
    """
    Upsert explanation records by (applicant, start_date, end_date).

    Returns:
        Number of records written
    """
    now = datetime.now().isoformat()
    count = 0
    for record in records:
        conn.execute(
            """
            INSERT INTO employment_gaps (applicant_id, start_date, end_date, explanation, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (applicant_id, start_date, end_date)
            DO UPDATE SET explanation = excluded.explanation, updated_at = excluded.updated_at
            """,
            (applicant_id, record['start_date'], record['end_date'], record.get('explanation') or '', now),
        )
        count += 1
    conn.commit()
    return count


# ============== Required references ==============

def list_required_references(conn, applicant_id: int) -> List[Dict[str, Any]]:
    rows = conn.execute(
        "SELECT * FROM required_references WHERE applicant_id = ? ORDER BY id",
        (applicant_id,),
    ).fetchall()
    return [dict(row) for row in rows]


def get_required_reference(conn, reference_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute("SELECT * FROM required_references WHERE id = ?", (reference_id,)).fetchone()
    return dict(row) if row else None


def sync_required_references(conn, applicant_id: int, records: Iterable[Dict[str, Any]]) -> int:
    """
    Bring the stored reference set in line with the newly resolved one.

    Rows are matched by employment entry: contact details are refreshed
    while status and its timestamps are kept, new referees are added as
    pending, and referees no longer required are removed.

    Returns:
        Number of references now stored
    """
    now = datetime.now().isoformat()
    existing = {
        row['employment_entry_id']: row['id']
        for row in conn.execute(
            "SELECT id, employment_entry_id FROM required_references WHERE applicant_id = ?",
            (applicant_id,),
        ).fetchall()
    }

    keep = set()
    for record in records:
        entry_id = record.get('employment_entry_id')
        values = (
            record.get('employer'),
            record.get('reference_name'),
            record.get('reference_email'),
            record.get('reference_phone'),
        )
        if entry_id in existing:
            conn.execute(
                """
                UPDATE required_references
                SET employer = ?, reference_name = ?, reference_email = ?,
                    reference_phone = ?, updated_at = ?
                WHERE id = ?
                """,
                (*values, now, existing[entry_id]),
            )
            keep.add(existing[entry_id])
        else:
            cursor = conn.execute(
                """
                INSERT INTO required_references (
                    applicant_id, employment_entry_id, employer,
                    reference_name, reference_email, reference_phone,
                    status, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, 'pending', ?, ?)
                """,
                (applicant_id, entry_id, *values, now, now),
            )
            keep.add(cursor.lastrowid)

    stale = [ref_id for ref_id in existing.values() if ref_id not in keep]
    for ref_id in stale:
        conn.execute("DELETE FROM required_references WHERE id = ?", (ref_id,))
    if stale:
        logger.info(f"Removed {len(stale)} reference(s) no longer required for applicant {applicant_id}")

    conn.commit()
    return len(keep)


def update_reference_status(conn, reference_id: int, status: str) -> Optional[Dict[str, Any]]:
    """
    Record a reference moving to a new lifecycle status.

    Sets the matching timestamp column (requested_at, received_at or
    verified_at). Callers check the transition is allowed.

    Raises:
        ValueError: If status is not one of REFERENCE_STATUSES
    """
    if status not in REFERENCE_STATUSES:
        raise ValueError(f"Unknown reference status: {status}")

    now = datetime.now().isoformat()
    assignments = "status = ?, updated_at = ?"
    values = [status, now]
    if status != 'pending':
        assignments += f", {status}_at = ?"
        values.append(now)

    conn.execute(
        f"UPDATE required_references SET {assignments} WHERE id = ?",
        (*values, reference_id),
    )
    conn.commit()
    logger.info(f"Reference {reference_id} marked {status}")
    return get_required_reference(conn, reference_id)


# ============== Progress ==============

def get_progress(conn, applicant_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        "SELECT current_step, completed_steps FROM application_progress WHERE applicant_id = ?",
        (applicant_id,),
    ).fetchone()
    if row is None:
        return None
    return {
        'current_step': row['current_step'],
        'completed_steps': json.loads(row['completed_steps'] or '[]'),
    }


def save_progress(conn, applicant_id: int, progress: Dict[str, Any]) -> None:
    conn.execute(
        """
        INSERT INTO application_progress (applicant_id, current_step, completed_steps, updated_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT (applicant_id)
        DO UPDATE SET current_step = excluded.current_step,
                      completed_steps = excluded.completed_steps,
                      updated_at = excluded.updated_at
        """,
        (
            applicant_id,
            progress['current_step'],
            json.dumps(list(progress['completed_steps'])),
            datetime.now().isoformat(),
        ),
    )
    conn.commit()
