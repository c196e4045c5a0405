"""Read-only API over the scheduled job registry."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from starter.api.contracts import ApiErrorResponse, JobListResponse, JobStatusResponse
from starter.api.errors import ApiError, ApiErrorCode
from starter.auth.guards import ADMIN_ONLY, AuthenticatedIdentity, AuthGuard
from starter.scheduler.registry import JobNotFoundError, JobScheduler, JobStatus


def _to_response(status: JobStatus) -> JobStatusResponse:
    return JobStatusResponse(
        name=status.name,
        running=status.running,
        interval_seconds=status.interval_seconds,
        run_count=status.run_count,
        last_run_at=status.last_run_at,
        next_run_at=status.next_run_at,
        last_error=status.last_error,
    )


def create_scheduler_router(scheduler: JobScheduler, guard: AuthGuard) -> APIRouter:
    """Build admin endpoints listing scheduled jobs."""
    router = APIRouter(prefix="/scheduler", tags=["scheduler"])
    admin_identity = Depends(guard.require_roles(ADMIN_ONLY))
    responses = {401: {"model": ApiErrorResponse}, 403: {"model": ApiErrorResponse}}

    @router.get("/jobs", response_model=JobListResponse, responses=responses)
    def list_jobs(identity: AuthenticatedIdentity = admin_identity) -> JobListResponse:
        return JobListResponse(
            jobs=[_to_response(status) for status in scheduler.get_all_job_status()]
        )

    @router.get(
        "/jobs/{name}",
        response_model=JobStatusResponse,
        responses={**responses, 404: {"model": ApiErrorResponse}},
    )
    def get_job(
        name: str, identity: AuthenticatedIdentity = admin_identity
    ) -> JobStatusResponse:
        try:
            return _to_response(scheduler.get_job_status(name))
        except JobNotFoundError as exc:
            raise ApiError(
                status_code=404,
                error_code=ApiErrorCode.SCHEDULER_JOB_NOT_FOUND,
                message=str(exc),
            ) from exc

    return router
