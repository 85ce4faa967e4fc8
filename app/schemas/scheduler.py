from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class SweepResultOut(BaseModel):
    notifications_created: int
    notifications_skipped: int
    errors: int
    duration_seconds: float


class SchedulerStatusOut(BaseModel):
    running: bool
    job_id: str
    timezone: str
    schedule: str
    next_run_time: datetime | None = None
