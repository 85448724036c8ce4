"""Health & trend monitor.

Runs on a fixed interval, independent of user traffic. Each tick probes the
end-to-end pipeline, retrieval, the knowledge base and the recent error
rate. Probes go through the public recommend() path, so they also act as
breaker-recovery probes.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

from src.toolmatch.monitoring.alerts import Alert, AlertCategory, AlertManager, AlertSeverity
from src.toolmatch.monitoring.trends import TrendAnalysis, analyze_trend
from src.toolmatch.retrieval.models import SearchContext, Task
from src.toolmatch.yaml_config import MonitorSettings
from src.utils.logger import get_logger

if TYPE_CHECKING:
    from src.toolmatch.engine import RecommendationEngine
    from src.toolmatch.monitoring.remediation import IncidentResponder

PROBE_CONTEXT = SearchContext(session_id="health-monitor")

PIPELINE_PROBE_TASK = Task(id="health-pipeline", name="Write Python code to automate a data pipeline")
RETRIEVAL_PROBE_TASK = Task(id="health-retrieval", name="data analysis dashboard")

CONSECUTIVE_FAILURE_THRESHOLD = 3
ERROR_RATE_DEGRADED = 0.10
ERROR_RATE_CRITICAL = 0.25


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"


@dataclass(frozen=True)
class HealthCheckResult:
    component: str
    status: HealthStatus
    response_time: float            # ms
    consecutive_failures: int = 0
    uptime_pct: float = 100.0
    timestamp: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "component": self.component,
            "status": self.status.value,
            "response_time": round(self.response_time, 2),
            "consecutive_failures": self.consecutive_failures,
            "uptime_pct": round(self.uptime_pct, 2),
            "timestamp": self.timestamp,
            "details": dict(self.details),
        }


@dataclass
class HealthReport:
    overall: HealthStatus
    components: dict[str, HealthCheckResult] = field(default_factory=dict)
    alerts: list[Alert] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "HealthReport":
        return cls(overall=HealthStatus.HEALTHY)

    def to_dict(self) -> dict:
        return {
            "overall": self.overall.value,
            "components": {name: r.to_dict() for name, r in self.components.items()},
            "alerts": [a.to_dict() for a in self.alerts],
        }


def overall_status(results: list[HealthCheckResult]) -> HealthStatus:
    statuses = {r.status for r in results}
    if HealthStatus.CRITICAL in statuses:
        return HealthStatus.CRITICAL
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


class HealthMonitor:
    """Periodic synthetic probing with bounded per-component history."""

    COMPONENTS = ("pipeline", "retrieval", "knowledge_base", "error_rate")

    def __init__(
        self,
        engine: "RecommendationEngine",
        settings: Optional[MonitorSettings] = None,
        alerts: Optional[AlertManager] = None,
        responder: Optional["IncidentResponder"] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.engine = engine
        self.settings = settings or MonitorSettings()
        self._clock = clock
        self.alerts = alerts or AlertManager(self.settings.alert_dedup_seconds, clock=clock)
        self.responder = responder
        self._history: dict[str, deque[HealthCheckResult]] = {}
        self._task: Optional[asyncio.Task] = None
        self.logger = get_logger("HealthMonitor")
        self._probes = {
            "pipeline": self._probe_pipeline,
            "retrieval": self._probe_retrieval,
            "knowledge_base": self._probe_knowledge_base,
            "error_rate": self._probe_error_rate,
        }

    # ------------------------------------------------------------------ lifecycle

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="health-monitor")
        self._task.add_done_callback(self._on_task_done)
        self.logger.info(f"🏥 Health monitor started (every {self.settings.interval_seconds:.0f}s)")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        self.logger.info("🏥 Health monitor stopped")

    def _on_task_done(self, task: asyncio.Task) -> None:
        if not task.cancelled():
            exc = task.exception()
            if exc:
                self.logger.error(f"❌ Health monitor loop failed: {exc}")

    async def _loop(self) -> None:
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error(f"❌ Health check tick failed: {e}")
            await asyncio.sleep(self.settings.interval_seconds)

    # ------------------------------------------------------------------ probing

    async def tick(self) -> dict[str, HealthCheckResult]:
        """Run every probe once. Probes run one after another."""
        results = {}
        for component in self.COMPONENTS:
            results[component] = await self.run_probe(component)
        return results

    async def run_probe(self, component: str) -> HealthCheckResult:
        probe = self._probes[component]
        start = time.perf_counter()
        try:
            status, details = await asyncio.wait_for(probe(), timeout=self.settings.probe_timeout_seconds)
        except asyncio.TimeoutError:
            status, details = HealthStatus.CRITICAL, {
                "error": f"probe timed out after {self.settings.probe_timeout_seconds}s"
            }
        except asyncio.CancelledError:
            raise
        except Exception as e:
            status, details = HealthStatus.CRITICAL, {"error": str(e)}
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        return await self.record(component, status, elapsed_ms, details)

    def _latency_status(self, elapsed_ms: float) -> HealthStatus:
        limit = self.settings.latency_threshold_ms
        if elapsed_ms > 2 * limit:
            return HealthStatus.CRITICAL
        if elapsed_ms > limit:
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    async def _probe_recommend(self, task: Task) -> tuple[HealthStatus, dict]:
        start = time.perf_counter()
        # Probes bypass the search cache so an outage is seen on the next tick
        result = await self.engine.recommend(task, context=PROBE_CONTEXT, use_cache=False)
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        details = {
            "tool_id": result.tool_id,
            "strategy": result.strategy_used.value if result.strategy_used else None,
            "final_score": result.final_score,
        }
        if result.strategy_used is None:
            # Every strategy failed
            return HealthStatus.CRITICAL, {**details, "error": result.reason}
        if not result.succeeded:
            return max(HealthStatus.DEGRADED, self._latency_status(elapsed_ms), key=_severity), details
        return self._latency_status(elapsed_ms), details

    async def _probe_pipeline(self) -> tuple[HealthStatus, dict]:
        return await self._probe_recommend(PIPELINE_PROBE_TASK)

    async def _probe_retrieval(self) -> tuple[HealthStatus, dict]:
        status, details = await self._probe_recommend(RETRIEVAL_PROBE_TASK)
        if details.get("tool_id") is None and status is not HealthStatus.CRITICAL:
            # Retrieval that cannot surface a single candidate is not working
            status = HealthStatus.CRITICAL
        return status, details

    async def _probe_knowledge_base(self) -> tuple[HealthStatus, dict]:
        stats = await self.engine.knowledge_stats()
        retrieval = self.engine.config.retrieval
        details = {"total_entries": stats.total_entries, "quality_score": round(stats.quality_score, 4)}
        if stats.total_entries == 0:
            return HealthStatus.CRITICAL, details
        if stats.total_entries < retrieval.rag_min_entries or stats.quality_score <= retrieval.rag_min_quality:
            return HealthStatus.DEGRADED, details
        return HealthStatus.HEALTHY, details

    async def _probe_error_rate(self) -> tuple[HealthStatus, dict]:
        rate = self.engine.metrics.error_rate(self.settings.error_rate_window_seconds)
        details = {"error_rate": round(rate, 4), "window_seconds": self.settings.error_rate_window_seconds}
        if rate >= ERROR_RATE_CRITICAL:
            return HealthStatus.CRITICAL, details
        if rate >= ERROR_RATE_DEGRADED:
            return HealthStatus.DEGRADED, details
        return HealthStatus.HEALTHY, details

    # ------------------------------------------------------------------ history & alerts

    async def record(
        self,
        component: str,
        status: HealthStatus,
        response_time: float,
        details: Optional[dict] = None,
    ) -> HealthCheckResult:
        """Append a check result, then evaluate alert rules for the component."""
        history = self._history.setdefault(component, deque(maxlen=self.settings.history_size))
        previous = history[-1] if history else None
        consecutive = (previous.consecutive_failures + 1 if previous else 1) if status is HealthStatus.CRITICAL else 0

        window = list(history)[-(self.settings.uptime_window - 1):] if self.settings.uptime_window > 1 else []
        statuses = [r.status for r in window] + [status]
        uptime = 100.0 * sum(1 for s in statuses if s is HealthStatus.HEALTHY) / len(statuses)

        result = HealthCheckResult(
            component=component,
            status=status,
            response_time=response_time,
            consecutive_failures=consecutive,
            uptime_pct=uptime,
            timestamp=self._clock(),
            details=dict(details or {}),
        )
        history.append(result)

        if status is not HealthStatus.HEALTHY:
            self.logger.warning(f"🏥 {component} is {status.value} ({response_time:.0f}ms)")

        new_alerts = self._evaluate_alerts(result, sample_count=len(statuses))
        if status is HealthStatus.HEALTHY:
            self.alerts.resolve_component(component)
        for alert in new_alerts:
            await self._dispatch(alert)
        return result

    def _evaluate_alerts(self, result: HealthCheckResult, sample_count: int) -> list[Alert]:
        s = self.settings
        raised: list[Optional[Alert]] = []

        if result.response_time > s.latency_threshold_ms and result.status is not HealthStatus.HEALTHY:
            severity = AlertSeverity.CRITICAL if result.status is HealthStatus.CRITICAL else AlertSeverity.WARNING
            raised.append(self.alerts.raise_alert(
                severity,
                AlertCategory.PERFORMANCE,
                f"{result.component} response time above {s.latency_threshold_ms:.0f}ms",
                component=result.component,
                metric=f"{result.component}.response_time",
                threshold=s.latency_threshold_ms,
                current_value=result.response_time,
                action_items=("Check knowledge store latency", "Clear search caches"),
            ))

        if result.consecutive_failures >= CONSECUTIVE_FAILURE_THRESHOLD:
            category = AlertCategory.ERROR_RATE if result.component == "error_rate" else AlertCategory.AVAILABILITY
            raised.append(self.alerts.raise_alert(
                AlertSeverity.CRITICAL,
                category,
                f"{result.component} failed {result.consecutive_failures} consecutive health checks",
                component=result.component,
                metric=f"{result.component}.consecutive_failures",
                threshold=CONSECUTIVE_FAILURE_THRESHOLD,
                current_value=result.consecutive_failures,
                action_items=("Inspect strategy breaker states", "Verify the knowledge store is reachable"),
            ))

        if sample_count >= s.uptime_min_samples and result.uptime_pct < s.uptime_threshold_pct:
            raised.append(self.alerts.raise_alert(
                AlertSeverity.WARNING,
                AlertCategory.AVAILABILITY,
                f"{result.component} uptime {result.uptime_pct:.1f}% below {s.uptime_threshold_pct:.0f}%",
                component=result.component,
                metric=f"{result.component}.uptime_pct",
                threshold=s.uptime_threshold_pct,
                current_value=result.uptime_pct,
                action_items=("Review recent failures in the health history",),
            ))

        return [a for a in raised if a is not None]

    async def _dispatch(self, alert: Alert) -> None:
        try:
            await self.engine.event_logger.log_alert(alert)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.warning(f"⚠️ Failed to audit alert {alert.id}: {e}")
        if self.responder is not None and self.settings.auto_remediation:
            self.responder.handle(alert)

    # ------------------------------------------------------------------ queries

    def history(self, component: str) -> list[HealthCheckResult]:
        return list(self._history.get(component, ()))

    def latest(self) -> dict[str, HealthCheckResult]:
        return {name: h[-1] for name, h in self._history.items() if h}

    def resolve_alert(self, alert_id: str) -> bool:
        return self.alerts.resolve(alert_id)

    def get_health(self) -> HealthReport:
        latest = self.latest()
        return HealthReport(
            overall=overall_status(list(latest.values())),
            components=latest,
            alerts=self.alerts.active(),
        )

    def response_time_trend(self, component: str) -> TrendAnalysis:
        history = self.history(component)
        return analyze_trend(
            [r.response_time for r in history],
            timestamps=[r.timestamp for r in history],
            threshold=self.settings.latency_threshold_ms,
            metric=f"{component}.response_time",
        )

    def uptime_trend(self, component: str) -> TrendAnalysis:
        history = self.history(component)
        return analyze_trend(
            [r.uptime_pct for r in history],
            timestamps=[r.timestamp for r in history],
            threshold=self.settings.uptime_threshold_pct,
            higher_is_worse=False,
            metric=f"{component}.uptime_pct",
        )

    def metric_trend(self, name: str, threshold: Optional[float] = None) -> TrendAnalysis:
        metrics = self.engine.metrics.recent(name)
        return analyze_trend(
            [m.value for m in metrics],
            timestamps=[m.timestamp for m in metrics],
            threshold=threshold,
            metric=name,
        )


_SEVERITY_ORDER = {HealthStatus.HEALTHY: 0, HealthStatus.DEGRADED: 1, HealthStatus.CRITICAL: 2}


def _severity(status: HealthStatus) -> int:
    return _SEVERITY_ORDER[status]
