"""Wire an engine, its monitor and its stores from a ToolMatchConfig."""

from __future__ import annotations

from typing import Optional

from src.toolmatch.engine import RecommendationEngine
from src.toolmatch.monitoring.alerts import AlertManager
from src.toolmatch.monitoring.health import HealthMonitor
from src.toolmatch.monitoring.remediation import IncidentResponder
from src.toolmatch.retrieval.base import CatalogStore, KnowledgeStore
from src.toolmatch.retrieval.logging import RecommendationLogger
from src.toolmatch.retrieval.memory_store import InMemoryToolStore
from src.toolmatch.yaml_config import ToolMatchConfig


def build_engine(
    config: Optional[ToolMatchConfig] = None,
    store: Optional[KnowledgeStore] = None,
    catalog: Optional[CatalogStore] = None,
    event_logger: Optional[RecommendationLogger] = None,
    with_monitor: bool = True,
) -> RecommendationEngine:
    """Build an engine. Without a store, the config's inline catalog is used.

    The monitor is attached but not started; callers own its lifecycle.
    """
    config = config or ToolMatchConfig()
    built_from_config = store is None
    if built_from_config:
        store = InMemoryToolStore.from_catalog_config(config.catalog)

    engine = RecommendationEngine(store, catalog=catalog, config=config, event_logger=event_logger)
    if built_from_config:
        # Tool names feed SPECIFIC_TOOL detection; other stores use refresh_known_tools()
        engine.classifier.set_known_tools(entry.name for entry in config.catalog.tools)

    if with_monitor:
        engine.monitor = HealthMonitor(
            engine,
            settings=config.monitor,
            alerts=AlertManager(config.monitor.alert_dedup_seconds),
            responder=IncidentResponder(engine),
        )
    return engine
