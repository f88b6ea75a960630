from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class EscalationAction(str, Enum):
    """Escalation step emitted by the overage tracker."""

    notify = "notify"
    terminate = "terminate"
    # Kill threshold reached before the report was sent: report first, then kill.
    report_and_terminate = "report_and_terminate"

    @property
    def reports(self) -> bool:
        return self in (EscalationAction.notify, EscalationAction.report_and_terminate)

    @property
    def terminates(self) -> bool:
        return self in (EscalationAction.terminate, EscalationAction.report_and_terminate)


class OverageOut(BaseModel):
    """Response model for an active over-limit episode."""

    instance_id: str = Field(..., description="Panel instance uuid.")
    instance_name: str = Field("", description="Instance display name at the time of the last evaluation.")
    category: int = Field(0, description="Panel nest id of the instance.")
    breach_started_at: datetime = Field(..., description="UTC timestamp when the current episode began.")
    elapsed_seconds: float = Field(..., ge=0, description="Seconds the instance has been over its limits.")
    notified: bool = Field(..., description="Whether the overage report was already sent for this episode.")
    report_after_sec: int = Field(..., description="Episode age at which a report is sent.")
    kill_after_sec: int = Field(..., description="Episode age at which the instance is killed.")


class OverageListResponse(BaseModel):
    """Envelope for listing active episodes."""

    items: List[OverageOut] = Field(..., description="Active over-limit episodes.")
    total: int = Field(..., ge=0, description="Total number of active episodes.")


class CycleStatsOut(BaseModel):
    """Summary of the most recent poll cycle."""

    started_at: datetime = Field(..., description="UTC timestamp when the cycle started.")
    finished_at: Optional[datetime] = Field(default=None, description="UTC timestamp when the cycle finished.")
    directory_failed: bool = Field(False, description="Whether the instance listing could not be retrieved.")
    instances_seen: int = Field(0, ge=0, description="Instances returned by the directory (after exclusions).")
    batches: int = Field(0, ge=0, description="Number of batches processed.")
    snapshots_fetched: int = Field(0, ge=0, description="Instances whose usage snapshot was retrieved.")
    fetch_failures: int = Field(0, ge=0, description="Instances whose usage snapshot could not be retrieved.")
    breaching: int = Field(0, ge=0, description="Instances found over their limits.")
    notified: int = Field(0, ge=0, description="Overage reports emitted during the cycle.")
    terminated: int = Field(0, ge=0, description="Kill commands emitted during the cycle.")
