"""
Run tracking models for the geo-event alert pipeline.

- PipelineRun: Audit record of one orchestrator invocation

Example:
    >>> from geoevent_alerts.models import PipelineRun
    >>>
    >>> run = PipelineRun(trigger="cron")
    >>> run.alerts_created += 3
    >>> run.complete()
    >>> print(f"{run.alerts_created} alerts in {run.duration_seconds}s")
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from geoevent_alerts.utils.time import from_iso8601, to_iso8601, utc_now


class RunStatus(str, Enum):
    """Status of a pipeline run."""

    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class PipelineRun(BaseModel):
    """Metadata about one pipeline run.

    A run with some failed providers still completes; its status is
    ``partial`` so the audit trail distinguishes it from a clean run.

    Attributes:
        id: Run id (database-assigned)
        trigger: What started the run (cron, cli, api)
        provider_limit: Providers requested for this run
        started_at: When the run started
        completed_at: When the run completed (None while running)
        status: Current run status
        providers_processed: Providers that finished without error
        providers_failed: Providers whose cycle raised
        events_fetched: Events returned by adapters
        events_new: Events left after deduplication
        events_created: Rows actually inserted
        alerts_created: SiteAlerts created
        notifications_created: Notifications created
        errors: Per-provider error records
    """

    model_config = ConfigDict(extra="ignore")

    id: int | None = Field(default=None, description="Run id (database-assigned)")
    trigger: str = Field(default="manual")
    provider_limit: int | None = None
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None
    status: RunStatus = RunStatus.RUNNING

    providers_processed: int = Field(default=0, ge=0)
    providers_failed: int = Field(default=0, ge=0)
    events_fetched: int = Field(default=0, ge=0)
    events_new: int = Field(default=0, ge=0)
    events_created: int = Field(default=0, ge=0)
    alerts_created: int = Field(default=0, ge=0)
    notifications_created: int = Field(default=0, ge=0)

    errors: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("started_at", "completed_at", mode="before")
    @classmethod
    def normalize_dates(cls, v: Any) -> datetime | None:
        if v is None:
            return None
        return from_iso8601(v)

    @computed_field  # type: ignore[misc]
    @property
    def duration_seconds(self) -> float | None:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    @computed_field  # type: ignore[misc]
    @property
    def is_running(self) -> bool:
        return self.status == RunStatus.RUNNING

    def complete(self, error: str | None = None) -> None:
        """Mark the run as finished.

        Args:
            error: Fatal error that aborted the whole run
        """
        self.completed_at = utc_now()
        if error:
            self.status = RunStatus.FAILED
            self.errors.append({"stage": "run", "error": error})
        elif self.providers_failed:
            self.status = RunStatus.PARTIAL
        else:
            self.status = RunStatus.COMPLETED

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to dictionary for SQLite insertion."""
        data = self.model_dump(exclude={"id", "duration_seconds", "is_running"})
        data["status"] = self.status.value
        data["started_at"] = to_iso8601(self.started_at)
        data["completed_at"] = to_iso8601(self.completed_at) if self.completed_at else None
        data["errors"] = json.dumps(self.errors, default=str)
        return data

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> PipelineRun:
        data = dict(row)
        if isinstance(data.get("errors"), str):
            data["errors"] = json.loads(data["errors"])
        return cls(**data)

    def summary_dict(self) -> dict[str, Any]:
        """Key run statistics for logging."""
        return {
            "id": self.id,
            "trigger": self.trigger,
            "status": self.status.value,
            "providers_processed": self.providers_processed,
            "providers_failed": self.providers_failed,
            "events_created": self.events_created,
            "alerts_created": self.alerts_created,
            "notifications_created": self.notifications_created,
            "duration_seconds": self.duration_seconds,
        }
