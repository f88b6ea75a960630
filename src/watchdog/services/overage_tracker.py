from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from threading import RLock
from typing import Dict, Iterable, List, Optional

from src.watchdog.config import WatchdogConfig
from src.watchdog.schemas.instances import Instance, ResourceSnapshot, is_over_limit
from src.watchdog.schemas.overages import EscalationAction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThresholdProfile:
    """Episode ages (seconds) at which an instance is reported and killed."""

    report_after_sec: int
    kill_after_sec: int


@dataclass
class OverageRecord:
    """State of one continuous over-limit episode."""

    breach_started_at: datetime
    notified: bool = False
    instance_name: str = ""
    category: int = 0


# PUBLIC_INTERFACE
def threshold_profile_for(category: int, config: WatchdogConfig) -> ThresholdProfile:
    """Report threshold is uniform; categories in extended_kill_categories get the longer kill threshold."""
    kill_after = config.extended_kill_after_sec if category in config.extended_kill_categories else config.kill_after_sec
    return ThresholdProfile(report_after_sec=config.report_after_sec, kill_after_sec=kill_after)


class OverageTracker:
    """
    Per-instance over-limit state machine.

    - A record is created on the first over-limit evaluation and removed on recovery or kill.
    - Notify is emitted once per episode; terminate ends the episode regardless of notify state,
      and carries the report along when the episode was never reported.

    Records are keyed by instance id. The lock serializes writers from the poll loop against
    readers from the diagnostics endpoints (served from worker threads).
    """

    def __init__(self, config: WatchdogConfig):
        self._config = config
        self._records: Dict[str, OverageRecord] = {}
        self._lock = RLock()

    def profile_for(self, category: int) -> ThresholdProfile:
        return threshold_profile_for(category, self._config)

    # PUBLIC_INTERFACE
    def evaluate(self, instance: Instance, snapshot: ResourceSnapshot, now: datetime) -> Optional[EscalationAction]:
        """Advance the instance's episode with a fresh snapshot and return the escalation step due, if any."""
        with self._lock:
            if not is_over_limit(instance.limits, snapshot):
                if self._records.pop(instance.id, None) is not None:
                    logger.info("[%s] Instance %s is back within limits. Resetting timer.", instance.name, instance.id)
                return None

            record = self._records.get(instance.id)
            if record is None:
                record = OverageRecord(breach_started_at=now, instance_name=instance.name, category=instance.category)
                self._records[instance.id] = record
                logger.warning("[%s] Instance %s is over the limit! Monitoring...", instance.name, instance.id)
            else:
                record.instance_name = instance.name
                record.category = instance.category

            profile = self.profile_for(instance.category)
            elapsed = (now - record.breach_started_at).total_seconds()

            if elapsed >= profile.kill_after_sec:
                del self._records[instance.id]
                logger.error(
                    "[%s] Instance %s has been over the limit for %.0fs (kill after %ss)",
                    instance.name,
                    instance.id,
                    elapsed,
                    profile.kill_after_sec,
                )
                if not record.notified:
                    return EscalationAction.report_and_terminate
                return EscalationAction.terminate

            if elapsed >= profile.report_after_sec and not record.notified:
                record.notified = True
                logger.warning(
                    "[%s] Instance %s has been over the limit for %.0fs (report after %ss)",
                    instance.name,
                    instance.id,
                    elapsed,
                    profile.report_after_sec,
                )
                return EscalationAction.notify

            return None

    # PUBLIC_INTERFACE
    def forget_missing(self, present_ids: Iterable[str]) -> List[str]:
        """Drop records of instances no longer present in the directory. Returns the dropped ids."""
        keep = set(present_ids)
        with self._lock:
            gone = [iid for iid in self._records if iid not in keep]
            for iid in gone:
                del self._records[iid]
        for iid in gone:
            logger.info("Instance %s disappeared from the directory; dropping its overage record", iid)
        return gone

    # PUBLIC_INTERFACE
    def get(self, instance_id: str) -> Optional[OverageRecord]:
        """Return a copy of the record for instance_id, or None."""
        with self._lock:
            record = self._records.get(instance_id)
            return replace(record) if record is not None else None

    # PUBLIC_INTERFACE
    def records(self) -> Dict[str, OverageRecord]:
        """Return a copy of all active records keyed by instance id."""
        with self._lock:
            return {iid: replace(rec) for iid, rec in self._records.items()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, instance_id: object) -> bool:
        with self._lock:
            return instance_id in self._records
