from __future__ import annotations

import logging

from src.watchdog.config import WatchdogConfig
from src.watchdog.schemas.instances import Instance, ResourceSnapshot
from src.watchdog.schemas.overages import EscalationAction
from src.watchdog.services.notifier import WebhookNotifier, format_duration
from src.watchdog.services.overage_tracker import threshold_profile_for
from src.watchdog.services.panel_client import PanelClient

logger = logging.getLogger(__name__)


def _kill_message(instance: Instance, kill_after_sec: int, dry_run: bool) -> str:
    if dry_run:
        return (
            f"[DRY RUN] Server **{instance.name}** ({instance.id}) would have been killed for maxing out "
            f"resources for {format_duration(kill_after_sec)} straight."
        )
    return (
        f"Server **{instance.name}** ({instance.id}) got killed for maxing out resources for "
        f"{format_duration(kill_after_sec)} straight!"
    )


# PUBLIC_INTERFACE
async def apply_escalation(
    action: EscalationAction,
    instance: Instance,
    snapshot: ResourceSnapshot,
    config: WatchdogConfig,
    panel: PanelClient,
    notifier: WebhookNotifier,
) -> None:
    """
    Carry out an escalation step emitted by the tracker.

    - notify: post the overage report.
    - terminate: send the kill signal (skipped in dry-run), then post an audit entry.
    - report_and_terminate: post the overage report, then terminate.

    Every sub-step is best-effort; failures are logged by the collaborators and never raised.
    """
    profile = threshold_profile_for(instance.category, config)

    if action.reports:
        await notifier.send_overage_report(instance, snapshot, profile.report_after_sec)

    if action.terminates:
        if config.dry_run:
            logger.warning("[%s] Dry run: not killing server %s", instance.name, instance.id)
        else:
            await panel.kill_instance(instance.id, instance.name)
        await notifier.send_action_log(instance, _kill_message(instance, profile.kill_after_sec, config.dry_run))
