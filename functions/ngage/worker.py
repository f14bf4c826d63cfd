"""
Background worker: sends queued deliveries and runs the periodic sweeps.

Deliveries (push, email and group integration messages) arrive as ids on
the delivery queue. Between deliveries the loop runs the deadline sweep,
the offline sync and the maintenance jobs at their configured cadence.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from ngage.config import get_settings
from ngage.dependencies import Services, get_queue_client, get_services
from ngage.errors import NgageError, handle_error
from ngage.queue import DeliveryQueue

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

MAX_DELIVERY_ATTEMPTS = 5


def process_next(
    *,
    services: Optional[Services] = None,
    queue: Optional[DeliveryQueue] = None,
    block: bool = True,
    timeout: Optional[int] = None,
) -> bool:
    """
    Fetch and send one delivery from the queue. Returns True if one was handled.

    A failed send goes back on the queue with its attempt count raised. Once
    MAX_DELIVERY_ATTEMPTS sends have failed the entry is dead-lettered.
    """
    services = services or get_services()
    queue = queue or get_queue_client()

    entry = queue.dequeue(block=block, timeout=timeout)
    if entry is None:
        return False

    if services.deliveries.deliver(entry.delivery_id):
        return True

    failed = entry.next_attempt(error="delivery failed")
    if failed.attempt < MAX_DELIVERY_ATTEMPTS:
        logger.info(
            "Requeueing delivery %s (attempt %d of %d)",
            entry.delivery_id,
            failed.attempt,
            MAX_DELIVERY_ATTEMPTS,
        )
        queue.requeue(failed)
    else:
        logger.error(
            "Dead-lettering delivery %s after %d attempts", entry.delivery_id, failed.attempt
        )
        queue.dead_letter(failed)
    return True


def run_deadline_sweep(services: Optional[Services] = None) -> dict:
    services = services or get_services()
    summary = services.deadlines.check_all_deadlines()
    logger.info(
        "Deadline sweep: checked=%d enforced=%d reminders=%d errors=%d",
        summary.checked,
        len(summary.enforced),
        summary.reminders_sent,
        summary.errors,
    )
    return summary.as_dict()


def run_offline_sync(services: Optional[Services] = None) -> dict:
    services = services or get_services()
    result = services.offline.sync_pending_operations()
    if result.synced or result.failed or result.dropped:
        logger.info("Offline sync: %s", result.as_dict())
    return result.as_dict()


def run_maintenance(services: Optional[Services] = None) -> dict:
    """Expires moderation actions, prunes old notifications, releases scheduled ones."""
    services = services or get_services()
    return {
        "expiredActions": services.moderation.cleanup_expired_actions(),
        "deletedNotifications": services.notifications.delete_old_notifications(),
        "dispatchedNotifications": services.notifications.dispatch_scheduled(),
    }


def _run_periodic(name: str, job: Callable[[], dict]) -> None:
    try:
        job()
    except NgageError as e:
        handle_error(e, context=name)
    except Exception:
        logger.exception("Periodic job %s failed", name)


def run_loop(poll_interval_seconds: float = 2.0) -> None:
    """
    Blocks on the delivery queue and runs the sweeps when they are due.
    Intended to be run under systemd/supervisor.
    """
    settings = get_settings()
    services = get_services()
    queue = get_queue_client()
    schedule = [
        ("deadline sweep", settings.deadline_check_interval_seconds, run_deadline_sweep),
        ("offline sync", settings.offline_sync_interval_seconds, run_offline_sync),
        ("maintenance", settings.maintenance_interval_seconds, run_maintenance),
    ]
    last_run = {name: 0.0 for name, _, _ in schedule}

    while True:
        now = time.monotonic()
        for name, interval, job in schedule:
            if now - last_run[name] >= interval:
                _run_periodic(name, lambda: job(services))
                last_run[name] = now
        processed = process_next(
            services=services, queue=queue, block=True, timeout=int(poll_interval_seconds)
        )
        if not processed:
            time.sleep(poll_interval_seconds)


if __name__ == "__main__":
    run_loop()
