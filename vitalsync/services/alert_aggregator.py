"""
Alert aggregation over the device directory.

Alerts live inside device records. This module flattens them into
``ActiveAlert`` tuples, filters resolved items and orders them newest first
across both backend timestamp formats. ``AlertFeed`` is the periodic
alert-refresh timer used by alert-presenting views.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple

from ..models.device import AlertType, Device, DeviceAlert
from .timestamps import reference_time, sort_key

logger = logging.getLogger(__name__)


class ActiveAlert(NamedTuple):
    device_id: str
    alert_id: str
    alert: DeviceAlert

    @property
    def key(self) -> Tuple[str, str]:
        return (self.device_id, self.alert_id)


_TYPE_PRIORITY = {
    AlertType.CRITICAL: 0,
    AlertType.WARNING: 1,
    AlertType.INFO: 2,
}


def all_alerts(devices: Dict[str, Device]) -> List[ActiveAlert]:
    """Every alert in the directory, resolved or not, in directory order."""
    return [
        ActiveAlert(device_id, alert_id, alert)
        for device_id, device in devices.items()
        for alert_id, alert in device.alerts.items()
    ]


def active_alerts(devices: Dict[str, Device]) -> List[ActiveAlert]:
    """Unresolved alerts, in directory order."""
    return [a for a in all_alerts(devices) if not a.alert.resolved]


def sorted_by_recency(alerts: Iterable[ActiveAlert],
                      now: Optional[datetime] = None) -> List[ActiveAlert]:
    """
    Newest first. Ties keep their input order.

    Unparseable timestamps sort as ``now``; ``now`` is fixed once per call so
    every bad timestamp gets the same instant.
    """
    now = reference_time(now)
    return sorted(alerts, key=lambda a: sort_key(a.alert.timestamp, now=now), reverse=True)


def prioritized(alerts: Iterable[ActiveAlert],
                now: Optional[datetime] = None) -> List[ActiveAlert]:
    """Unresolved before resolved, critical before warning before info, then newest first."""
    by_recency = sorted_by_recency(alerts, now=now)
    return sorted(by_recency, key=lambda a: (a.alert.resolved, _TYPE_PRIORITY[a.alert.alert_type]))


def critical_only(alerts: Iterable[ActiveAlert]) -> List[ActiveAlert]:
    return [a for a in alerts if a.alert.alert_type == AlertType.CRITICAL]


def warning_only(alerts: Iterable[ActiveAlert]) -> List[ActiveAlert]:
    return [a for a in alerts if a.alert.alert_type == AlertType.WARNING]


class AlertChanges(NamedTuple):
    new: List[ActiveAlert]
    resolved: List[ActiveAlert]


class AlertChangeTracker:
    """Detects new and newly resolved alerts between successive snapshots."""

    def __init__(self):
        self._previous: Optional[Dict[Tuple[str, str], ActiveAlert]] = None

    def diff(self, alerts: Iterable[ActiveAlert]) -> AlertChanges:
        current = {a.key: a for a in alerts}
        previous = self._previous
        self._previous = current

        # First snapshot establishes the baseline
        if previous is None:
            return AlertChanges(new=[], resolved=[])

        new = [
            a for key, a in current.items()
            if key not in previous and not a.alert.resolved
        ]
        resolved = [
            a for key, a in current.items()
            if a.alert.resolved and key in previous and not previous[key].alert.resolved
        ]
        return AlertChanges(new=new, resolved=resolved)

    def reset(self):
        self._previous = None


AlertCallback = Callable[[ActiveAlert], None]


class AlertFeed:
    """
    Level-triggered alert refresh timer.

    Each tick re-fetches the device directory only (the cheaper alerts
    refresh) and reports alert transitions to the callbacks. A refresh that
    starts while another is running is dropped.
    """

    def __init__(self, directory, interval_seconds: float = 60.0,
                 on_new_alert: Optional[AlertCallback] = None,
                 on_alert_resolved: Optional[AlertCallback] = None,
                 on_refresh: Optional[Callable[[], Awaitable[None]]] = None):
        self.directory = directory
        self.interval_seconds = interval_seconds
        self.on_new_alert = on_new_alert
        self.on_alert_resolved = on_alert_resolved
        self.on_refresh = on_refresh

        self.alerts: List[ActiveAlert] = []
        self.error: Optional[str] = None
        self.last_updated: Optional[datetime] = None

        self._tracker = AlertChangeTracker()
        self._task: Optional[asyncio.Task] = None
        self._refreshing = False

    @property
    def active(self) -> List[ActiveAlert]:
        return [a for a in self.alerts if not a.alert.resolved]

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.is_polling:
            return
        self._task = asyncio.create_task(self._refresh_loop())
        logger.info(f"Alert feed started, refreshing every {self.interval_seconds}s")

    async def stop(self):
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Alert feed stopped")

    async def refresh(self) -> bool:
        """Refresh alerts now. Returns False if a refresh was already running."""
        if self._refreshing:
            return False

        self._refreshing = True
        try:
            refreshed = await self.directory.refresh_alerts_only()
        finally:
            self._refreshing = False

        if not refreshed:
            self.error = self.directory.error
            return True

        self.error = None
        snapshot = prioritized(all_alerts(self.directory.devices))
        changes = self._tracker.diff(snapshot)
        self.alerts = snapshot
        self.last_updated = datetime.now(timezone.utc)

        if self.on_refresh:
            await self.on_refresh()
        for alert in changes.new:
            logger.info(f"New {alert.alert.alert_type.value} alert {alert.alert_id} on device {alert.device_id}")
            if self.on_new_alert:
                self.on_new_alert(alert)
        for alert in changes.resolved:
            logger.info(f"Alert {alert.alert_id} on device {alert.device_id} resolved")
            if self.on_alert_resolved:
                self.on_alert_resolved(alert)
        return True

    async def _refresh_loop(self):
        while True:
            try:
                await self.refresh()
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in alert refresh: {e}")
                await asyncio.sleep(self.interval_seconds)
