"""In-memory registry of sprite build jobs with TTL expiry.

WHY: A sprite build over dozens of clips runs many ffmpeg processes and
can take longer than an HTTP client wants to hold a connection. The API
hands out a job ID right away, builds in the background, and keeps the
result on disk until the client fetches it or the job expires.

HOW: SpriteJob holds one build's state and its work directory, which is
split into ``inputs/`` (uploaded clips) and ``sprite/`` (exported audio
and manifest). JobStore keeps jobs in a dict guarded by a threading.Lock
because the background runner works in a different thread than the
request handlers.

RULES:
- Status flow: pending -> building -> completed | failed
- Every job owns a fresh temp directory, removed on delete or expiry
- Only finished jobs expire; the TTL counts from finished_at
- The store refuses new jobs once max_jobs are held
"""

from __future__ import annotations

import enum
import logging
import shutil
import tempfile
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600
DEFAULT_MAX_JOBS = 50
WORK_DIR_PREFIX = "audiosprite_job_"


class JobStatus(str, enum.Enum):
    """Lifecycle states of a sprite job."""

    PENDING = "pending"
    BUILDING = "building"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def finished(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobLimitError(Exception):
    """Raised when the store already holds its maximum number of jobs."""


@dataclass
class SpriteJob:
    """State of one sprite build requested over HTTP.

    RULES:
    - clips: uploaded clip filenames, in the order they go on the track
    - options: BuildConfig fields given with the request; "output" is a
      bare file stem, placed inside output_dir when the build runs
    - output_files: filenames inside output_dir, set once completed
    - manifest: the manifest dict, set once completed
    - error: failure message, set once failed
    """

    id: str
    status: JobStatus
    clips: List[str]
    work_dir: Path
    created_at: float
    updated_at: float
    finished_at: Optional[float] = None
    options: Dict[str, Any] = field(default_factory=dict)
    output_files: List[str] = field(default_factory=list)
    manifest: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def inputs_dir(self) -> Path:
        return self.work_dir / "inputs"

    @property
    def output_dir(self) -> Path:
        return self.work_dir / "sprite"

    def input_paths(self) -> List[Path]:
        return [self.inputs_dir / name for name in self.clips]


class JobStore:
    """Thread-safe dict of SpriteJob objects keyed by ID."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_jobs: int = DEFAULT_MAX_JOBS,
    ) -> None:
        self._jobs: Dict[str, SpriteJob] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_jobs = max_jobs

    def create_job(self, clips: List[str], options: Optional[Dict[str, Any]] = None) -> SpriteJob:
        """Register a PENDING job and create its work directories.

        Raises JobLimitError when max_jobs jobs are already held.
        """
        with self._lock:
            if len(self._jobs) >= self.max_jobs:
                raise JobLimitError(
                    "Job limit reached ({} jobs held)".format(self.max_jobs)
                )
            now = time.time()
            job = SpriteJob(
                id=uuid.uuid4().hex,
                status=JobStatus.PENDING,
                clips=list(clips),
                work_dir=Path(tempfile.mkdtemp(prefix=WORK_DIR_PREFIX)),
                created_at=now,
                updated_at=now,
                options=dict(options or {}),
            )
            job.inputs_dir.mkdir()
            job.output_dir.mkdir()
            self._jobs[job.id] = job

        logger.info("Created sprite job %s with %d clips", job.id, len(job.clips))
        return job

    def get_job(self, job_id: str) -> Optional[SpriteJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(self) -> List[SpriteJob]:
        """Snapshot of all jobs, oldest first."""
        with self._lock:
            return sorted(self._jobs.values(), key=lambda j: j.created_at)

    def set_status(
        self,
        job_id: str,
        status: JobStatus,
        *,
        error: Optional[str] = None,
        output_files: Optional[List[str]] = None,
        manifest: Optional[Dict[str, Any]] = None,
    ) -> Optional[SpriteJob]:
        """Move a job to ``status`` and attach its results.

        Returns None when the job is gone (deleted while building).
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            job.status = status
            job.updated_at = time.time()
            if error is not None:
                job.error = error
            if output_files is not None:
                job.output_files = list(output_files)
            if manifest is not None:
                job.manifest = manifest
            if status.finished:
                job.finished_at = job.updated_at
            return job

    def delete_job(self, job_id: str) -> bool:
        with self._lock:
            job = self._jobs.pop(job_id, None)
        if job is None:
            return False
        remove_work_dir(job.work_dir)
        logger.info("Deleted sprite job %s", job_id)
        return True

    def cleanup_expired(self, now: Optional[float] = None) -> int:
        """Drop finished jobs older than the TTL; return how many were removed."""
        now = time.time() if now is None else now
        with self._lock:
            expired = [
                job for job in self._jobs.values()
                if job.status.finished
                and job.finished_at is not None
                and now - job.finished_at > self._ttl_seconds
            ]
            for job in expired:
                del self._jobs[job.id]

        for job in expired:
            remove_work_dir(job.work_dir)
            logger.info("Expired sprite job %s", job.id)
        return len(expired)


def remove_work_dir(path: Path) -> None:
    """Remove a job work directory, logging (never raising) failures."""
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
    except OSError as exc:
        logger.warning("Could not remove job directory %s: %s", path, exc)
