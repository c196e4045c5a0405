"""In-process registry of named periodic jobs running on the event loop."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from starter.core.db import utcnow

LOGGER = logging.getLogger(__name__)

JobCallback = Callable[[], Any] | Callable[[], Awaitable[Any]]


class SchedulerError(Exception):
    """Base error for job registry operations."""


class JobAlreadyExistsError(SchedulerError):
    """Raised when a job name is registered twice."""


class JobNotFoundError(SchedulerError):
    """Raised when an operation names an unknown job."""


@dataclass(frozen=True)
class JobStatus:
    """Point-in-time view of one scheduled job."""

    name: str
    running: bool
    interval_seconds: float
    run_count: int
    last_run_at: datetime | None
    next_run_at: datetime | None
    last_error: str


@dataclass
class ScheduledJob:
    """Mutable handle for a registered job and its loop task."""

    name: str
    interval_seconds: float
    callback: JobCallback
    enabled: bool = True
    run_count: int = 0
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    last_error: str = ""
    task: asyncio.Task[None] | None = None
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)


class JobScheduler:
    """Run registered callbacks every ``interval_seconds`` until stopped.

    Jobs registered before :meth:`start` wait for it; jobs registered after
    start immediately. Mutating calls on a started scheduler must come from
    the event loop thread.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, ScheduledJob] = {}
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def add_job(
        self,
        name: str,
        interval_seconds: float,
        callback: JobCallback,
    ) -> ScheduledJob:
        """Register ``callback`` under ``name``."""
        normalized_name = name.strip()
        if not normalized_name:
            raise ValueError("job name is required")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if normalized_name in self._jobs:
            raise JobAlreadyExistsError(f"Job '{normalized_name}' already exists")

        job = ScheduledJob(
            name=normalized_name,
            interval_seconds=float(interval_seconds),
            callback=callback,
        )
        self._jobs[normalized_name] = job
        if self._started:
            self._launch(job)
        LOGGER.info("job_added", extra={"job_name": normalized_name})
        return job

    def delete_job(self, name: str) -> None:
        """Stop and unregister ``name``."""
        job = self._get(name)
        self._halt(job)
        del self._jobs[job.name]
        LOGGER.info("job_deleted", extra={"job_name": job.name})

    def stop_job(self, name: str) -> None:
        """Pause ``name`` without unregistering it."""
        job = self._get(name)
        job.enabled = False
        self._halt(job)
        LOGGER.info("job_stopped", extra={"job_name": job.name})

    def start_job(self, name: str) -> None:
        """Resume a stopped job; running jobs are left alone."""
        job = self._get(name)
        if job.enabled:
            return
        job.enabled = True
        if self._started:
            self._launch(job)
        LOGGER.info("job_started", extra={"job_name": job.name})

    def job_names(self) -> list[str]:
        return sorted(self._jobs)

    def job_exists(self, name: str) -> bool:
        return name.strip() in self._jobs

    def get_job_status(self, name: str) -> JobStatus:
        return self._status(self._get(name))

    def get_all_job_status(self) -> list[JobStatus]:
        return [self._status(self._jobs[name]) for name in self.job_names()]

    async def start(self) -> None:
        """Launch loops for every enabled job."""
        if self._started:
            return
        self._started = True
        for job in self._jobs.values():
            if job.enabled:
                self._launch(job)

    async def shutdown(self) -> None:
        """Stop every job loop and wait for in-flight runs to finish."""
        self._started = False
        tasks = []
        for job in self._jobs.values():
            if job.task is not None:
                tasks.append(job.task)
            self._halt(job)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _get(self, name: str) -> ScheduledJob:
        job = self._jobs.get(name.strip())
        if job is None:
            raise JobNotFoundError(f"Job '{name}' not found")
        return job

    def _status(self, job: ScheduledJob) -> JobStatus:
        return JobStatus(
            name=job.name,
            running=self._started and job.enabled,
            interval_seconds=job.interval_seconds,
            run_count=job.run_count,
            last_run_at=job.last_run_at,
            next_run_at=job.next_run_at,
            last_error=job.last_error,
        )

    def _launch(self, job: ScheduledJob) -> None:
        if job.task is not None and not job.task.done():
            return
        job.stop_event = asyncio.Event()
        job.task = asyncio.get_running_loop().create_task(self._run_loop(job))

    @staticmethod
    def _halt(job: ScheduledJob) -> None:
        # The loop exits at its next wait; a run in progress completes.
        job.stop_event.set()
        job.next_run_at = None
        job.task = None

    async def _run_loop(self, job: ScheduledJob) -> None:
        stop_event = job.stop_event
        while not stop_event.is_set():
            job.next_run_at = utcnow() + timedelta(seconds=job.interval_seconds)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=job.interval_seconds)
                break
            except asyncio.TimeoutError:
                pass
            await self._execute(job)

    @staticmethod
    async def _execute(job: ScheduledJob) -> None:
        try:
            if inspect.iscoroutinefunction(job.callback):
                await job.callback()
            else:
                await asyncio.to_thread(job.callback)
        except Exception as exc:
            job.last_error = str(exc) or exc.__class__.__name__
            LOGGER.exception("job_failed", extra={"job_name": job.name})
        else:
            job.last_error = ""
        job.run_count += 1
        job.last_run_at = utcnow()
