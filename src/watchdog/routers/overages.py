from __future__ import annotations

from fastapi import APIRouter, HTTPException, Path, Request

from src.watchdog.schemas.common import ErrorResponse, utc_now
from src.watchdog.schemas.overages import CycleStatsOut, OverageListResponse, OverageOut
from src.watchdog.services.overage_tracker import OverageRecord, OverageTracker
from src.watchdog.state import get_state

router = APIRouter(prefix="/api", tags=["Overages"])


def _record_to_out(tracker: OverageTracker, instance_id: str, record: OverageRecord) -> OverageOut:
    profile = tracker.profile_for(record.category)
    elapsed = (utc_now() - record.breach_started_at).total_seconds()
    return OverageOut(
        instance_id=instance_id,
        instance_name=record.instance_name,
        category=record.category,
        breach_started_at=record.breach_started_at,
        elapsed_seconds=max(0.0, elapsed),
        notified=record.notified,
        report_after_sec=profile.report_after_sec,
        kill_after_sec=profile.kill_after_sec,
    )


@router.get(
    "/overages",
    response_model=OverageListResponse,
    summary="List active overages",
    description="Return instances currently over their limits, oldest episode first.",
    operation_id="list_overages",
)
def list_overages(request: Request) -> OverageListResponse:
    """List active over-limit episodes."""
    tracker = get_state(request.app).tracker
    items = [_record_to_out(tracker, iid, rec) for iid, rec in tracker.records().items()]
    items.sort(key=lambda o: o.breach_started_at)
    return OverageListResponse(items=items, total=len(items))


@router.get(
    "/overages/{instance_id}",
    response_model=OverageOut,
    responses={404: {"model": ErrorResponse}},
    summary="Get overage",
    description="Fetch the active over-limit episode of a single instance.",
    operation_id="get_overage",
)
def get_overage(request: Request, instance_id: str = Path(..., description="Instance identifier")) -> OverageOut:
    """Fetch one instance's active episode."""
    tracker = get_state(request.app).tracker
    record = tracker.get(instance_id)
    if record is None:
        raise HTTPException(status_code=404, detail="instance is not over its limits")
    return _record_to_out(tracker, instance_id, record)


@router.get(
    "/cycles/last",
    response_model=CycleStatsOut,
    responses={404: {"model": ErrorResponse}},
    summary="Last poll cycle",
    description="Summary of the most recently completed poll cycle.",
    operation_id="last_cycle",
)
def last_cycle(request: Request) -> CycleStatsOut:
    """Return the last cycle's summary."""
    stats = get_state(request.app).last_cycle
    if stats is None:
        raise HTTPException(status_code=404, detail="no poll cycle has completed yet")
    return stats
