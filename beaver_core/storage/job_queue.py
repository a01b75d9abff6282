"""Job queue for background sync and integrity operations."""

import json
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from beaver_core.storage.sqlite_store import RecordStore

logger = logging.getLogger(__name__)

JOB_MODES = ("sync", "validate", "repair", "reconcile")


@dataclass
class Job:
    """A background sync or integrity job."""

    job_id: str
    mode: str
    status: str
    progress: int
    entity: str | None
    result: dict[str, Any] | None
    started_at: str | None
    completed_at: str | None
    error_message: str | None
    created_at: str


class JobQueue:
    """Queue for managing background sync jobs.

    Features:
    - Job creation and status updates via atomic SQL operations
    - Cooperative cancellation through per-job events
    - Progress tracking and job status polling

    Thread Safety:
    - Uses atomic UPDATE ... RETURNING for job acquisition
    - SQLite handles concurrent access with internal locking
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store
        self._cancel_events: dict[str, threading.Event] = {}
        self._events_lock = threading.Lock()

    def create_job(self, mode: str, entity: str | None = None) -> Job:
        """Create a new pending job.

        Args:
            mode: One of 'sync', 'validate', 'repair', 'reconcile'
            entity: Entity type for a single-type sync

        Returns:
            Created job with job_id
        """
        if mode not in JOB_MODES:
            raise ValueError(f"Unknown job mode: {mode}")

        job_id = str(uuid.uuid4())

        cursor = self.store.conn.cursor()
        cursor.execute(
            """
            INSERT INTO sync_jobs (job_id, mode, status, progress, entity)
            VALUES (?, ?, 'pending', 0, ?)
            """,
            (job_id, mode, entity),
        )
        self.store.conn.commit()

        with self._events_lock:
            self._cancel_events[job_id] = threading.Event()

        logger.info(f"Created job {job_id} (mode={mode})", extra={"event": "job_created", "job_id": job_id})

        return self.get_job(job_id)

    def get_job(self, job_id: str) -> Job | None:
        cursor = self.store.conn.cursor()
        cursor.execute("SELECT * FROM sync_jobs WHERE job_id = ?", (job_id,))
        row = cursor.fetchone()
        if not row:
            return None
        return self._row_to_job(row)

    def _row_to_job(self, row: Any) -> Job:
        job_data = dict(row)
        return Job(
            job_id=job_data["job_id"],
            mode=job_data["mode"],
            status=job_data["status"],
            progress=job_data["progress"],
            entity=job_data.get("entity"),
            result=json.loads(job_data["result"]) if job_data.get("result") else None,
            started_at=job_data.get("started_at"),
            completed_at=job_data.get("completed_at"),
            error_message=job_data.get("error_message"),
            created_at=job_data["created_at"],
        )

    def update_job_status(
        self,
        job_id: str,
        status: str | None = None,
        progress: int | None = None,
        result: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> bool:
        """Update job status.

        Returns:
            True if updated, False if job not found
        """
        updates: list[str] = []
        values: list[Any] = []

        if status is not None:
            updates.append("status = ?")
            values.append(status)
            if status == "running":
                updates.append("started_at = CURRENT_TIMESTAMP")
            elif status in ("complete", "failed", "cancelled"):
                updates.append("completed_at = CURRENT_TIMESTAMP")

        if progress is not None:
            updates.append("progress = ?")
            values.append(progress)

        if result is not None:
            updates.append("result = ?")
            values.append(json.dumps(result))

        if error_message is not None:
            updates.append("error_message = ?")
            values.append(error_message)

        if not updates:
            return True

        values.append(job_id)

        cursor = self.store.conn.cursor()
        cursor.execute(
            f"UPDATE sync_jobs SET {', '.join(updates)} WHERE job_id = ?",
            values,
        )
        self.store.conn.commit()

        return cursor.rowcount > 0

    def get_running_job(self) -> Job | None:
        cursor = self.store.conn.cursor()
        cursor.execute("SELECT job_id FROM sync_jobs WHERE status = 'running' LIMIT 1")
        row = cursor.fetchone()
        if not row:
            return None
        return self.get_job(row["job_id"])

    def list_jobs(self, status: str | None = None, limit: int = 50) -> list[Job]:
        """List jobs, newest first, optionally filtered by status."""
        cursor = self.store.conn.cursor()

        if status:
            cursor.execute(
                "SELECT * FROM sync_jobs WHERE status = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (status, limit),
            )
        else:
            cursor.execute(
                "SELECT * FROM sync_jobs ORDER BY created_at DESC, id DESC LIMIT ?",
                (limit,),
            )

        return [self._row_to_job(row) for row in cursor.fetchall()]

    def cancel_event(self, job_id: str) -> threading.Event:
        """Event the job's worker checks between rows."""
        with self._events_lock:
            return self._cancel_events.setdefault(job_id, threading.Event())

    def cancel_job(self, job_id: str) -> Job | None:
        """Request cancellation.

        A pending job is cancelled immediately. A running job stops at its
        next row boundary. Finished jobs are returned unchanged.
        """
        job = self.get_job(job_id)
        if job is None:
            return None

        if job.status == "pending":
            cursor = self.store.conn.cursor()
            cursor.execute(
                """
                UPDATE sync_jobs SET status = 'cancelled', completed_at = CURRENT_TIMESTAMP
                WHERE job_id = ? AND status = 'pending'
                """,
                (job_id,),
            )
            self.store.conn.commit()
            if cursor.rowcount:
                # Never acquired, so nothing else will drop its event
                with self._events_lock:
                    self._cancel_events.pop(job_id, None)
            else:
                self.cancel_event(job_id).set()
        elif job.status == "running":
            self.cancel_event(job_id).set()

        if job.status in ("pending", "running"):
            logger.info(f"Cancellation requested for job {job_id}", extra={"event": "job_cancel", "job_id": job_id})

        return self.get_job(job_id)

    @contextmanager
    def acquire_job(self, job_id: str) -> Any:
        """Context manager to atomically acquire and run a job.

        Yields:
            The job object

        Raises:
            ValueError: If job not found or not pending (already acquired)
        """
        cursor = self.store.conn.cursor()
        cursor.execute(
            """
            UPDATE sync_jobs
            SET status = 'running',
                started_at = CURRENT_TIMESTAMP
            WHERE job_id = ? AND status = 'pending'
            RETURNING *
            """,
            (job_id,),
        )
        row = cursor.fetchone()
        self.store.conn.commit()

        if not row:
            existing = self.get_job(job_id)
            if not existing:
                raise ValueError(f"Job not found: {job_id}")
            raise ValueError(f"Job not available: {job_id} (status={existing.status}, already acquired)")

        job = self._row_to_job(row)

        try:
            yield job
            if self.cancel_event(job_id).is_set():
                self.update_job_status(job_id, status="cancelled")
            else:
                self.update_job_status(job_id, status="complete", progress=100)
        except Exception as e:
            if self.cancel_event(job_id).is_set():
                logger.info(f"Job {job_id} cancelled: {e}")
                self.update_job_status(job_id, status="cancelled", error_message=str(e))
            else:
                logger.error(f"Job {job_id} failed: {e}")
                self.update_job_status(job_id, status="failed", error_message=str(e))
            raise
        finally:
            with self._events_lock:
                self._cancel_events.pop(job_id, None)


# Global job queue singleton
_job_queue_instance: JobQueue | None = None
_job_queue_lock = threading.Lock()


def get_job_queue(db_path: str) -> JobQueue:
    """Get or create the global job queue for ``db_path``.

    Cancellation events live on the instance, so every caller in the
    process must share it.
    """
    global _job_queue_instance

    with _job_queue_lock:
        if _job_queue_instance is None or _job_queue_instance.store.db_path != db_path:
            _job_queue_instance = JobQueue(RecordStore(db_path))

    return _job_queue_instance


def reset_job_queue() -> None:
    global _job_queue_instance
    with _job_queue_lock:
        _job_queue_instance = None
