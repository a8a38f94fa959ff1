"""
Advisory job lease backed by the job_locks table.

A row per job name (unique) marks the job as running until ``expires_at``.
Expired rows are cleared before each attempt so a crashed holder never blocks
the job for longer than the lease.
"""

import logging
import os
import socket
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator, Optional

from postgrest.exceptions import APIError

from database.supabase_client import SupabaseClient
from lifecycle.classifier import utc_now
from services.errors import PG_UNIQUE_VIOLATION

logger = logging.getLogger(__name__)


def default_holder() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class JobLock:
    """Lease on a named job."""

    def __init__(
        self,
        db_client: SupabaseClient,
        job_name: str,
        ttl_seconds: int = 900,
        holder: Optional[str] = None
    ):
        self.db_client = db_client
        self.job_name = job_name
        self.ttl = timedelta(seconds=ttl_seconds)
        self.holder = holder or default_holder()
        self.acquired = False

    def acquire(self, now: Optional[datetime] = None) -> bool:
        """Take the lease; False if another holder has it."""
        now = now or utc_now()
        self.db_client.delete_expired_job_lock(self.job_name, now)
        try:
            self.db_client.insert_job_lock({
                "job_name": self.job_name,
                "holder": self.holder,
                "acquired_at": now.isoformat(),
                "expires_at": (now + self.ttl).isoformat(),
            })
        except APIError as e:
            if e.code == PG_UNIQUE_VIOLATION:
                logger.info("Job lock held elsewhere, skipping run", extra={"job_name": self.job_name})
                return False
            raise
        self.acquired = True
        logger.debug("Job lock acquired", extra={"job_name": self.job_name, "holder": self.holder})
        return True

    def release(self):
        if not self.acquired:
            return
        try:
            self.db_client.delete_job_lock(self.job_name, self.holder)
        finally:
            self.acquired = False
        logger.debug("Job lock released", extra={"job_name": self.job_name, "holder": self.holder})

    @contextmanager
    def held(self, now: Optional[datetime] = None) -> Iterator[bool]:
        """
        Context manager yielding whether the lease was taken.

        The body should do nothing when it yields False. The lease is released
        on exit, including when the body raises.
        """
        acquired = self.acquire(now)
        try:
            yield acquired
        finally:
            if acquired:
                self.release()
