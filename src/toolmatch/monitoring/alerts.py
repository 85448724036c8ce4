"""Alerts raised by the health monitor.

An alert is suppressed when an unresolved alert with the same category,
metric and severity was raised within the de-duplication window.
"""

from __future__ import annotations

import itertools
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from src.utils.logger import get_logger


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertCategory(str, Enum):
    PERFORMANCE = "performance"
    AVAILABILITY = "availability"
    ERROR_RATE = "error_rate"
    KNOWLEDGE = "knowledge"


@dataclass
class Alert:
    id: str
    severity: AlertSeverity
    category: AlertCategory
    title: str
    component: str
    metric: str
    threshold: float
    current_value: float
    action_items: tuple[str, ...] = ()
    created_at: float = 0.0
    resolved: bool = False
    resolved_at: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "severity": self.severity.value,
            "category": self.category.value,
            "title": self.title,
            "component": self.component,
            "metric": self.metric,
            "threshold": self.threshold,
            "current_value": self.current_value,
            "action_items": list(self.action_items),
            "created_at": self.created_at,
            "resolved": self.resolved,
            "resolved_at": self.resolved_at,
        }


class AlertManager:
    """Creates, de-duplicates and resolves alerts."""

    def __init__(
        self,
        dedup_seconds: float = 300.0,
        max_history: int = 500,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.dedup_seconds = dedup_seconds
        self._clock = clock
        self._alerts: deque[Alert] = deque(maxlen=max_history)
        self._ids = itertools.count(1)
        self.logger = get_logger("AlertManager")

    def raise_alert(
        self,
        severity: AlertSeverity,
        category: AlertCategory,
        title: str,
        component: str,
        metric: str,
        threshold: float,
        current_value: float,
        action_items: tuple[str, ...] = (),
    ) -> Optional[Alert]:
        """Return the new alert, or None if a duplicate is still active."""
        now = self._clock()
        for existing in self._alerts:
            if (
                not existing.resolved
                and existing.category is category
                and existing.metric == metric
                and existing.severity is severity
                and now - existing.created_at < self.dedup_seconds
            ):
                return None

        alert = Alert(
            id=f"alert-{next(self._ids)}",
            severity=severity,
            category=category,
            title=title,
            component=component,
            metric=metric,
            threshold=threshold,
            current_value=current_value,
            action_items=tuple(action_items),
            created_at=now,
        )
        self._alerts.append(alert)
        log = self.logger.error if severity is AlertSeverity.CRITICAL else self.logger.warning
        log(f"🚨 [{severity.value}] {title} ({metric}={current_value:.2f}, threshold {threshold:.2f})")
        return alert

    def active(self) -> list[Alert]:
        return [a for a in self._alerts if not a.resolved]

    def all(self) -> list[Alert]:
        return list(self._alerts)

    def resolve(self, alert_id: str) -> bool:
        for alert in self._alerts:
            if alert.id == alert_id and not alert.resolved:
                alert.resolved = True
                alert.resolved_at = self._clock()
                self.logger.info(f"✅ Alert {alert_id} resolved")
                return True
        return False

    def resolve_component(self, component: str, include_critical: bool = False) -> list[Alert]:
        """Resolve a recovered component's alerts. Critical ones stay unless asked."""
        resolved = []
        for alert in self._alerts:
            if alert.resolved or alert.component != component:
                continue
            if alert.severity is AlertSeverity.CRITICAL and not include_critical:
                continue
            alert.resolved = True
            alert.resolved_at = self._clock()
            resolved.append(alert)
        if resolved:
            self.logger.info(f"✅ Auto-resolved {len(resolved)} alert(s) for {component}")
        return resolved
