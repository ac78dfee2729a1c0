"""
SQLite Database Repository - Submission, Rating and Outbox Persistence
======================================================================

Implements every store port of the pipeline on one SQLite file.

CONCURRENCY:
- Every write runs in a BEGIN IMMEDIATE transaction, so writers are
  serialized by SQLite itself and no in-process lock is needed
- Token redemption and the insert are conditional writes. The insert
  re-checks the email, IP and device cooldown and the per-IP limit, so
  racing callers see exactly one winner
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from ...application.ports import BusinessDirectory, OutboxStore, RatingSnapshotStore, SubmissionStore
from ...domain.errors import RateLimited, StoreUnavailable
from ...domain.models import (
    ACTIVE_STATES,
    BusinessProfile,
    RatingSnapshot,
    Submission,
    SubmissionState,
    new_id,
)

logger = logging.getLogger(__name__)

DATABASE_FILE = "reviewtrust.db"

# Fixed-width UTC timestamps compare correctly as strings
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# Outbox messages stuck in 'sending' this long are handed out again
STALE_CLAIM_AFTER = timedelta(minutes=10)

SUBMISSION_COLUMNS = (
    "id", "business_id", "rating", "title", "body", "images", "videos",
    "reviewer_name", "reviewer_email", "ip_address", "device_key", "user_agent",
    "submission_attempts", "state", "token", "token_expires_at", "verified",
    "verified_at", "resend_count", "spam_score", "is_spam", "spam_reasons",
    "created_at", "updated_at",
)


def to_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def from_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


class Database(SubmissionStore, RatingSnapshotStore, BusinessDirectory, OutboxStore):
    """
    SQLite database for the review trust pipeline.

    Usage:
        db = Database("reviewtrust.db")
        db.init()

        db.add_business("Mama's Kitchen", owner_email="owner@example.com")
        pending = db.list_by_state(SubmissionState.PENDING)
    """

    def __init__(self, db_path: str = DATABASE_FILE, timeout: float = 30.0):
        self.db_path = str(db_path)
        self._timeout = timeout

    @contextmanager
    def _get_connection(self, immediate: bool = False):
        """
        Get database connection with context manager.

        Args:
            immediate: take the write lock up front (BEGIN IMMEDIATE).
        """
        try:
            conn = sqlite3.connect(self.db_path, timeout=self._timeout)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Cannot open database: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Database error on {self.db_path}: {e}")
            raise StoreUnavailable(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init(self):
        """Initialize database tables."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS submissions (
                    id TEXT PRIMARY KEY,
                    business_id TEXT NOT NULL,
                    rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
                    title TEXT,
                    body TEXT NOT NULL,
                    images TEXT DEFAULT '[]',
                    videos TEXT DEFAULT '[]',
                    reviewer_name TEXT NOT NULL,
                    reviewer_email TEXT NOT NULL,
                    ip_address TEXT DEFAULT '',
                    device_key TEXT DEFAULT '',
                    user_agent TEXT DEFAULT '',
                    submission_attempts INTEGER DEFAULT 1,
                    state TEXT NOT NULL DEFAULT 'pending',
                    token TEXT,
                    token_expires_at TEXT,
                    verified INTEGER DEFAULT 0,
                    verified_at TEXT,
                    resend_count INTEGER DEFAULT 0,
                    spam_score INTEGER DEFAULT 0,
                    is_spam INTEGER DEFAULT 0,
                    spam_reasons TEXT DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_submissions_token ON submissions (token)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_submissions_email "
                "ON submissions (business_id, reviewer_email, created_at)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_submissions_ip ON submissions (ip_address, created_at)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_submissions_device ON submissions (device_key, created_at)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_submissions_state ON submissions (business_id, state)"
            )

            conn.execute("""
                CREATE TABLE IF NOT EXISTS rating_snapshots (
                    business_id TEXT PRIMARY KEY,
                    average REAL NOT NULL,
                    review_count INTEGER NOT NULL,
                    recomputed_at TEXT
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS businesses (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    slug TEXT DEFAULT '',
                    owner_email TEXT DEFAULT '',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS outbox (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    kind TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    attempts INTEGER DEFAULT 0,
                    last_error TEXT DEFAULT '',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_outbox_status ON outbox (status, id)")

            logger.info(f"Database initialized: {self.db_path}")

    # ── Submissions ────────────────────────────────────────────────

    def create(self, submission: Submission, cooldown_since: Optional[datetime] = None,
               ip_limit: Optional[int] = None, rate_since: Optional[datetime] = None) -> bool:
        """
        Insert a submission. Duplicate and rate checks run in the same write
        transaction as the insert.

        Returns:
            False if an active submission for this business from the same
            email, IP or device was created after cooldown_since.

        Raises:
            RateLimited: the IP already has ip_limit submissions since rate_since.
        """
        values = self._submission_to_row(submission)
        columns = ", ".join(SUBMISSION_COLUMNS)
        placeholders = ", ".join("?" for _ in SUBMISSION_COLUMNS)

        with self._get_connection(immediate=True) as conn:
            if cooldown_since is not None:
                active = [s.value for s in ACTIVE_STATES]
                duplicate = conn.execute(
                    """SELECT 1 FROM submissions
                       WHERE business_id = ?
                         AND (reviewer_email = ? OR ip_address = ? OR device_key = ?)
                         AND state IN (?, ?) AND created_at > ?
                       LIMIT 1""",
                    (submission.business_id, submission.reviewer_email, submission.ip_address,
                     submission.device_key, *active, to_timestamp(cooldown_since))
                ).fetchone()
                if duplicate:
                    return False

            if ip_limit is not None and rate_since is not None:
                count = conn.execute(
                    "SELECT COUNT(*) FROM submissions WHERE ip_address = ? AND created_at > ?",
                    (submission.ip_address, to_timestamp(rate_since))
                ).fetchone()[0]
                if count >= ip_limit:
                    raise RateLimited()

            conn.execute(f"INSERT INTO submissions ({columns}) VALUES ({placeholders})", values)

        logger.debug(f"Stored submission {submission.id} ({submission.state.value})")
        return True

    def get(self, submission_id: str) -> Optional[Submission]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM submissions WHERE id = ?", (submission_id,)
            ).fetchone()
            return self._row_to_submission(row) if row else None

    def find_by_token(self, token: str) -> Optional[Submission]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM submissions WHERE token = ?", (token,)
            ).fetchone()
            return self._row_to_submission(row) if row else None

    def find_recent_by_fingerprint(self, business_id: str, since: datetime, email: str,
                                   ip: str, device_key: str) -> List[Submission]:
        active = [s.value for s in ACTIVE_STATES]
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT * FROM submissions
                   WHERE business_id = ?
                     AND (reviewer_email = ? OR ip_address = ? OR device_key = ?)
                     AND created_at > ?
                     AND state IN (?, ?)
                   ORDER BY created_at DESC""",
                (business_id, email, ip, device_key, to_timestamp(since), *active)
            ).fetchall()
            return [self._row_to_submission(row) for row in rows]

    def count_by_ip(self, ip: str, since: datetime) -> int:
        with self._get_connection() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM submissions WHERE ip_address = ? AND created_at > ?",
                (ip, to_timestamp(since))
            ).fetchone()[0]

    def count_by_device(self, device_key: str, since: datetime) -> int:
        with self._get_connection() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM submissions WHERE device_key = ? AND created_at > ?",
                (device_key, to_timestamp(since))
            ).fetchone()[0]

    def update_state(self, submission_id: str, state: SubmissionState) -> bool:
        """State transition driven by moderation collaborators."""
        now = to_timestamp(datetime.now(timezone.utc))
        with self._get_connection(immediate=True) as conn:
            cursor = conn.execute(
                "UPDATE submissions SET state = ?, updated_at = ? WHERE id = ?",
                (state.value, now, submission_id)
            )
            return cursor.rowcount == 1

    def update_verification(self, submission_id: str, token: Optional[str],
                            expires_at: Optional[datetime], resend_count: Optional[int] = None) -> bool:
        """Overwrite the single token field of a submission."""
        now = to_timestamp(datetime.now(timezone.utc))
        with self._get_connection(immediate=True) as conn:
            if resend_count is None:
                cursor = conn.execute(
                    """UPDATE submissions SET token = ?, token_expires_at = ?, updated_at = ?
                       WHERE id = ? AND verified = 0""",
                    (token, to_timestamp(expires_at), now, submission_id)
                )
            else:
                cursor = conn.execute(
                    """UPDATE submissions
                       SET token = ?, token_expires_at = ?, resend_count = ?, updated_at = ?
                       WHERE id = ? AND verified = 0""",
                    (token, to_timestamp(expires_at), resend_count, now, submission_id)
                )
            return cursor.rowcount == 1

    def redeem_token(self, token: str, now: datetime) -> Optional[Submission]:
        """Consume a token and publish its submission in one write transaction."""
        stamp = to_timestamp(now)
        with self._get_connection(immediate=True) as conn:
            row = conn.execute(
                """SELECT id FROM submissions
                   WHERE token = ? AND verified = 0 AND is_spam = 0
                     AND state = ? AND token_expires_at > ?""",
                (token, SubmissionState.PENDING.value, stamp)
            ).fetchone()
            if row is None:
                return None

            cursor = conn.execute(
                """UPDATE submissions
                   SET verified = 1, verified_at = ?, token = NULL, token_expires_at = NULL,
                       state = ?, updated_at = ?
                   WHERE id = ? AND token = ? AND verified = 0""",
                (stamp, SubmissionState.PUBLISHED.value, stamp, row["id"], token)
            )
            if cursor.rowcount != 1:
                return None

            updated = conn.execute(
                "SELECT * FROM submissions WHERE id = ?", (row["id"],)
            ).fetchone()
            return self._row_to_submission(updated)

    def published_stats(self, business_id: str) -> Tuple[float, int]:
        with self._get_connection() as conn:
            row = conn.execute(
                """SELECT AVG(rating), COUNT(*) FROM submissions
                   WHERE business_id = ? AND state = ? AND verified = 1 AND is_spam = 0""",
                (business_id, SubmissionState.PUBLISHED.value)
            ).fetchone()
            average, count = row[0], row[1]
            return (float(average) if average is not None else 0.0), int(count)

    def list_by_state(self, state: SubmissionState, limit: int = 20, offset: int = 0,
                      unexpired_at: Optional[datetime] = None) -> List[Submission]:
        with self._get_connection() as conn:
            if unexpired_at is not None:
                rows = conn.execute(
                    """SELECT * FROM submissions
                       WHERE state = ? AND token_expires_at > ?
                       ORDER BY created_at DESC LIMIT ? OFFSET ?""",
                    (state.value, to_timestamp(unexpired_at), limit, offset)
                ).fetchall()
            else:
                rows = conn.execute(
                    """SELECT * FROM submissions WHERE state = ?
                       ORDER BY created_at DESC LIMIT ? OFFSET ?""",
                    (state.value, limit, offset)
                ).fetchall()
            return [self._row_to_submission(row) for row in rows]

    def get_stats(self) -> Dict[str, int]:
        """Submission counts per state plus outbox backlog."""
        with self._get_connection() as conn:
            stats = {state.value: 0 for state in SubmissionState}
            for row in conn.execute("SELECT state, COUNT(*) FROM submissions GROUP BY state"):
                stats[row[0]] = row[1]
            stats["outbox_pending"] = conn.execute(
                "SELECT COUNT(*) FROM outbox WHERE status IN ('pending', 'sending')"
            ).fetchone()[0]
            stats["outbox_dead"] = conn.execute(
                "SELECT COUNT(*) FROM outbox WHERE status = 'dead'"
            ).fetchone()[0]
            return stats

    def _submission_to_row(self, s: Submission) -> list:
        now = to_timestamp(s.created_at)
        return [
            s.id, s.business_id, s.rating, s.title, s.body,
            json.dumps(s.images), json.dumps(s.videos),
            s.reviewer_name, s.reviewer_email, s.ip_address, s.device_key, s.user_agent,
            s.submission_attempts, s.state.value, s.token, to_timestamp(s.token_expires_at),
            int(s.verified), to_timestamp(s.verified_at), s.resend_count,
            s.spam_score, int(s.is_spam), json.dumps(list(s.spam_reasons)),
            now, now,
        ]

    def _row_to_submission(self, row: sqlite3.Row) -> Submission:
        """Convert database row to Submission object."""
        return Submission(
            id=row["id"],
            business_id=row["business_id"],
            rating=row["rating"],
            title=row["title"],
            body=row["body"],
            images=json.loads(row["images"] or "[]"),
            videos=json.loads(row["videos"] or "[]"),
            reviewer_name=row["reviewer_name"],
            reviewer_email=row["reviewer_email"],
            ip_address=row["ip_address"] or "",
            device_key=row["device_key"] or "",
            user_agent=row["user_agent"] or "",
            submission_attempts=row["submission_attempts"] or 1,
            state=SubmissionState(row["state"]),
            token=row["token"],
            token_expires_at=from_timestamp(row["token_expires_at"]),
            verified=bool(row["verified"]),
            verified_at=from_timestamp(row["verified_at"]),
            resend_count=row["resend_count"] or 0,
            spam_score=row["spam_score"] or 0,
            is_spam=bool(row["is_spam"]),
            spam_reasons=json.loads(row["spam_reasons"] or "[]"),
            created_at=from_timestamp(row["created_at"]),
        )

    # ── Rating snapshots ───────────────────────────────────────────

    def get_snapshot(self, business_id: str) -> Optional[RatingSnapshot]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM rating_snapshots WHERE business_id = ?", (business_id,)
            ).fetchone()
            if not row:
                return None
            return RatingSnapshot(
                business_id=row["business_id"],
                average=row["average"],
                count=row["review_count"],
                recomputed_at=from_timestamp(row["recomputed_at"]),
            )

    def upsert_snapshot(self, snapshot: RatingSnapshot) -> None:
        with self._get_connection(immediate=True) as conn:
            conn.execute(
                """INSERT OR REPLACE INTO rating_snapshots
                   (business_id, average, review_count, recomputed_at) VALUES (?, ?, ?, ?)""",
                (snapshot.business_id, snapshot.average, snapshot.count,
                 to_timestamp(snapshot.recomputed_at))
            )

    # ── Businesses ─────────────────────────────────────────────────

    def add_business(self, name: str, owner_email: str = "", slug: str = "",
                     business_id: Optional[str] = None) -> Optional[str]:
        """Register a business in the local directory copy."""
        business_id = business_id or new_id()
        try:
            with self._get_connection() as conn:
                conn.execute(
                    "INSERT INTO businesses (id, name, slug, owner_email) VALUES (?, ?, ?, ?)",
                    (business_id, name, slug, owner_email)
                )
                return business_id
        except StoreUnavailable as e:
            if isinstance(e.__cause__, sqlite3.IntegrityError):
                logger.warning(f"Business {business_id} already exists")
                return None
            raise

    def get_business(self, business_id: str) -> Optional[BusinessProfile]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM businesses WHERE id = ?", (business_id,)
            ).fetchone()
            if not row:
                return None
            return BusinessProfile(
                id=row["id"],
                name=row["name"],
                owner_email=row["owner_email"] or "",
                slug=row["slug"] or "",
            )

    # ── Outbox ─────────────────────────────────────────────────────

    def enqueue(self, kind: str, payload: dict, now: datetime) -> int:
        stamp = to_timestamp(now)
        with self._get_connection(immediate=True) as conn:
            cursor = conn.execute(
                """INSERT INTO outbox (kind, payload, status, attempts, created_at, updated_at)
                   VALUES (?, ?, 'pending', 0, ?, ?)""",
                (kind, json.dumps(payload), stamp, stamp)
            )
            return cursor.lastrowid

    def claim_pending(self, limit: int, now: datetime) -> List[dict]:
        stamp = to_timestamp(now)
        stale = to_timestamp(now - STALE_CLAIM_AFTER)
        with self._get_connection(immediate=True) as conn:
            rows = conn.execute(
                """SELECT * FROM outbox
                   WHERE status = 'pending' OR (status = 'sending' AND updated_at < ?)
                   ORDER BY id LIMIT ?""",
                (stale, limit)
            ).fetchall()
            for row in rows:
                conn.execute(
                    "UPDATE outbox SET status = 'sending', updated_at = ? WHERE id = ?",
                    (stamp, row["id"])
                )
            return [self._row_to_message(row) for row in rows]

    def mark_sent(self, message_id: int, now: datetime) -> None:
        with self._get_connection(immediate=True) as conn:
            conn.execute(
                "UPDATE outbox SET status = 'sent', last_error = '', updated_at = ? WHERE id = ?",
                (to_timestamp(now), message_id)
            )

    def mark_failed(self, message_id: int, error: str, now: datetime, dead: bool) -> None:
        with self._get_connection(immediate=True) as conn:
            conn.execute(
                """UPDATE outbox
                   SET status = ?, attempts = attempts + 1, last_error = ?, updated_at = ?
                   WHERE id = ?""",
                ("dead" if dead else "pending", error, to_timestamp(now), message_id)
            )

    def list_outbox(self, status: Optional[str] = None) -> List[dict]:
        with self._get_connection() as conn:
            if status:
                rows = conn.execute(
                    "SELECT * FROM outbox WHERE status = ? ORDER BY id", (status,)
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM outbox ORDER BY id").fetchall()
            return [self._row_to_message(row) for row in rows]

    def _row_to_message(self, row: sqlite3.Row) -> dict:
        return {
            "id": row["id"],
            "kind": row["kind"],
            "payload": json.loads(row["payload"]),
            "status": row["status"],
            "attempts": row["attempts"],
            "last_error": row["last_error"] or "",
        }


def init_database(db_path: str = DATABASE_FILE) -> Database:
    """Initialize database (no seed data inserted)."""
    db = Database(db_path)
    db.init()
    return db


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    db = init_database()
    print(f"Stats: {db.get_stats()}")
