"""
Jobs API Router
Inspect the periodic jobs and trigger them by hand
"""

from typing import Any, Dict, List
from fastapi import APIRouter, Depends, HTTPException, status

from api.deps import get_scheduler, verify_api_key


router = APIRouter(prefix="/jobs", tags=["jobs"], dependencies=[Depends(verify_api_key)])


@router.get("/", response_model=List[Dict[str, Any]])
async def list_jobs(scheduler=Depends(get_scheduler)):
    """
    List jobs with their schedule, running flag and last run
    """
    return scheduler.status()


@router.post("/{name}/run")
async def run_job(name: str, scheduler=Depends(get_scheduler)):
    """
    Run a job now and wait for it

    A job that is already running is not started twice;
    the response then has **triggered** false.
    """
    if name not in scheduler.jobs:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job '{name}' not found"
        )

    result = await scheduler.run_now(name)
    result["last_result"] = scheduler.jobs[name].last_result
    return result
