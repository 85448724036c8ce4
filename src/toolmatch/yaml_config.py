from __future__ import annotations
from pathlib import Path
from typing import Any, Literal, Optional
import yaml
from pydantic import BaseModel, Field, ValidationError
from src.toolmatch.retrieval.models import CatalogTool, KnowledgeEntry, parse_pricing
from src.utils.logger import get_logger

logger = get_logger("config")


class RetrievalSettings(BaseModel):
    candidate_count: int = Field(default=10, ge=1)
    call_timeout_seconds: float = Field(default=5.0, gt=0)
    min_similarity: float = Field(default=0.05, ge=0.0, le=1.0)
    knowledge_top_k: int = Field(default=3, ge=1)
    min_knowledge_similarity: float = Field(default=0.1, ge=0.0, le=1.0)
    rag_min_entries: int = Field(default=1, ge=0)
    rag_min_quality: float = Field(default=0.5, ge=0.0, le=1.0)
    cache_ttl_seconds: float = Field(default=900.0, ge=0)
    cache_max_entries: int = Field(default=100, ge=0)


class BreakerSettings(BaseModel):
    failure_threshold: int = Field(default=3, ge=1)
    cooldown_seconds: float = Field(default=60.0, ge=0)


class BatchSettings(BaseModel):
    mode: Literal["sequential", "parallel"] = "sequential"
    inter_call_delay_seconds: float = Field(default=1.0, ge=0)
    max_concurrency: int = Field(default=4, ge=1)


class MonitorSettings(BaseModel):
    interval_seconds: float = Field(default=30.0, gt=0)
    history_size: int = Field(default=100, ge=1)
    uptime_window: int = Field(default=20, ge=1)
    uptime_min_samples: int = Field(default=5, ge=1)
    uptime_threshold_pct: float = 95.0
    latency_threshold_ms: float = 2000.0
    alert_dedup_seconds: float = 300.0
    probe_timeout_seconds: float = Field(default=10.0, gt=0)
    metrics_capacity: int = Field(default=1000, ge=1)
    error_rate_window_seconds: float = 300.0
    auto_remediation: bool = False


class ToolEntry(BaseModel):
    id: str
    name: str
    description: str = ""
    url: str = ""
    logo_url: str = ""
    categories: list[str] = Field(default_factory=list)
    pricing: str = "unknown"
    difficulty: Optional[str] = None
    updated_at: float = 0.0
    scores: dict[str, Any] = Field(default_factory=dict)
    review_average: Optional[float] = None
    review_count: int = 0

    def to_catalog_tool(self) -> CatalogTool:
        return CatalogTool(
            tool_id=self.id,
            name=self.name,
            url=self.url,
            logo_url=self.logo_url,
            categories=tuple(c.lower() for c in self.categories),
            pricing=parse_pricing(self.pricing),
            difficulty=self.difficulty.lower() if self.difficulty else None,
            updated_at=self.updated_at,
            scores=dict(self.scores),
            review_average=self.review_average,
            review_count=self.review_count,
        )


class KnowledgeEntryConfig(BaseModel):
    id: str
    title: str
    content: str = ""
    keywords: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    quality: float = Field(default=1.0, ge=0.0, le=1.0)

    def to_entry(self) -> KnowledgeEntry:
        return KnowledgeEntry(
            id=self.id,
            title=self.title,
            content=self.content,
            keywords=tuple(self.keywords),
            categories=tuple(c.lower() for c in self.categories),
            quality=self.quality,
        )


class CatalogConfig(BaseModel):
    tools: list[ToolEntry] = Field(default_factory=list)
    knowledge: list[KnowledgeEntryConfig] = Field(default_factory=list)


class ToolMatchConfig(BaseModel):
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    breaker: BreakerSettings = Field(default_factory=BreakerSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)


def load_config(path: Path) -> ToolMatchConfig:
    """Load YAML config from path. Returns default config if file doesn't exist or is invalid."""
    if not path.exists():
        return ToolMatchConfig()
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return ToolMatchConfig.model_validate(raw)
    except yaml.YAMLError as e:
        logger.error(f"❌ Invalid YAML in {path}: {e}")
        return ToolMatchConfig()
    except (ValidationError, TypeError, ValueError) as e:
        logger.error(f"❌ Invalid config schema at {path}: {e}")
        return ToolMatchConfig()
    except Exception as e:
        logger.error(f"❌ Unexpected error loading config from {path}: {e}")
        return ToolMatchConfig()


def save_config(config: ToolMatchConfig, path: Path) -> None:
    """Save config to YAML file, creating parent dirs as needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(
            config.model_dump(exclude_none=False),
            f,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
