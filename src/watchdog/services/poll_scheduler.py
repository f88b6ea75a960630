from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from src.watchdog.schemas.common import utc_now
from src.watchdog.schemas.instances import Instance, is_over_limit
from src.watchdog.schemas.overages import CycleStatsOut, EscalationAction
from src.watchdog.services.escalation import apply_escalation
from src.watchdog.state import AppState

logger = logging.getLogger(__name__)


async def _pause(shutdown_event: asyncio.Event, seconds: float) -> None:
    """Sleep for seconds, waking early when shutdown is requested."""
    if shutdown_event.is_set():
        return
    try:
        await asyncio.wait_for(shutdown_event.wait(), timeout=max(0.0, seconds))
    except asyncio.TimeoutError:
        pass


def _batches(items: Sequence[Instance], size: int) -> List[List[Instance]]:
    size = max(1, int(size))
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


async def _check_instance(state: AppState, instance: Instance, stats: CycleStatsOut) -> Optional[EscalationAction]:
    """Fetch one snapshot, advance the tracker and run the escalation step it emits."""
    snapshot = await state.panel.fetch_snapshot(instance)
    if snapshot is None:
        stats.fetch_failures += 1
        return None
    stats.snapshots_fetched += 1

    limits = instance.limits
    logger.info(
        "[%s] CPU %.1f%% (limit %g%%) | Memory %.2f GB (limit %.2f GB) | Disk %.2f GB (limit %.2f GB)",
        instance.name,
        snapshot.cpu_percent,
        limits.cpu,
        snapshot.memory_gb,
        limits.memory_gb,
        snapshot.disk_gb,
        limits.disk_gb,
    )

    if is_over_limit(limits, snapshot):
        stats.breaching += 1

    action = state.tracker.evaluate(instance, snapshot, utc_now())
    if action is None:
        return None

    if action.reports:
        stats.notified += 1
    if action.terminates:
        stats.terminated += 1

    await apply_escalation(action, instance, snapshot, state.config, state.panel, state.notifier)
    return action


async def _run_batch(state: AppState, batch: List[Instance], stats: CycleStatsOut) -> None:
    """Check every instance of the batch concurrently and wait for all of them."""
    results = await asyncio.gather(
        *(_check_instance(state, inst, stats) for inst in batch),
        return_exceptions=True,
    )
    for inst, result in zip(batch, results):
        if isinstance(result, BaseException):
            logger.error(
                "[%s] Resource check failed for %s: %s",
                inst.name,
                inst.id,
                result,
                exc_info=(type(result), result, result.__traceback__),
            )


# PUBLIC_INTERFACE
async def run_cycle(state: AppState, shutdown_event: asyncio.Event) -> CycleStatsOut:
    """
    Run one poll cycle (without the trailing cycle delay).

    - Resolve the directory; when it is unavailable the cycle is a no-op.
    - Process instances in sequential batches of batch_size, pausing batch_delay_sec after each.
    """
    cfg = state.config
    stats = CycleStatsOut(started_at=utc_now())

    instances = await state.panel.list_instances()
    if instances is None:
        logger.error("Server directory unavailable; skipping this cycle")
        stats.directory_failed = True
        stats.finished_at = utc_now()
        return stats

    stats.instances_seen = len(instances)
    state.tracker.forget_missing(inst.id for inst in instances)

    for batch in _batches(instances, cfg.batch_size):
        if shutdown_event.is_set():
            break
        await _run_batch(state, batch, stats)
        stats.batches += 1
        await _pause(shutdown_event, cfg.batch_delay_sec)

    stats.finished_at = utc_now()
    return stats


# PUBLIC_INTERFACE
async def watchdog_loop(state: AppState, shutdown_event: asyncio.Event) -> None:
    """
    Background loop that polls the fleet and escalates sustained overages.

    Errors are logged and non-fatal; a failed cycle is followed by the regular cycle delay.
    """
    cfg = state.config
    logger.info(
        "Resource watchdog started (batch_size=%s, batch_delay=%ss, cycle_delay=%ss, report_after=%ss, kill_after=%ss)",
        cfg.batch_size,
        cfg.batch_delay_sec,
        cfg.cycle_delay_sec,
        cfg.report_after_sec,
        cfg.kill_after_sec,
    )

    while not shutdown_event.is_set():
        try:
            state.last_cycle = await run_cycle(state, shutdown_event)
        except Exception:
            logger.exception("Watchdog cycle failed")
        else:
            logger.info(
                "Completed resource check for all servers. Sleeping for %s seconds.",
                cfg.cycle_delay_sec,
            )

        await _pause(shutdown_event, cfg.cycle_delay_sec)

    logger.info("Resource watchdog stopped")
