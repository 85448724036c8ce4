from __future__ import annotations
import json
from pathlib import Path
from typing import Optional
from src.toolmatch.batch import BatchSummary
from src.toolmatch.factory import build_engine
from src.toolmatch.retrieval.models import UserPreferences
from src.toolmatch.yaml_config import load_config
from src.utils.logger import get_logger

logger = get_logger("cli")
DEFAULT_YAML = Path.home() / ".config" / "toolmatch" / "config.yaml"


def _preferences(free_only: bool = False, budget: Optional[str] = None,
                 categories: Optional[list[str]] = None) -> Optional[UserPreferences]:
    data = {}
    if free_only:
        data["free_tools_only"] = True
    if budget:
        data["budget_range"] = budget
    if categories:
        data["categories"] = categories
    return UserPreferences.from_dict(data) if data else None


def cmd_catalog(yaml_path: Path = DEFAULT_YAML, category: Optional[str] = None) -> str:
    config = load_config(yaml_path)
    if not config.catalog.tools:
        return f"No tools configured. Add a catalog section to {yaml_path}"

    lines = [f"Catalog ({len(config.catalog.tools)} tools, {len(config.catalog.knowledge)} knowledge entries)"]
    for entry in sorted(config.catalog.tools, key=lambda t: t.name.lower()):
        if category and category.lower() not in (c.lower() for c in entry.categories):
            continue
        cats = ", ".join(entry.categories) or "uncategorized"
        lines.append(f"  {entry.name} [{entry.id}] - {entry.pricing} - {cats}")
    return "\n".join(lines)


async def cmd_recommend(
    task_name: str,
    yaml_path: Path = DEFAULT_YAML,
    free_only: bool = False,
    budget: Optional[str] = None,
    categories: Optional[list[str]] = None,
    as_json: bool = False,
) -> str:
    engine = build_engine(load_config(yaml_path), with_monitor=False)
    result = await engine.recommend(task_name, _preferences(free_only, budget, categories))
    if as_json:
        return json.dumps(result.to_dict(), indent=2)
    if not result.succeeded:
        return f"✗ No recommendation for {task_name!r}: {result.reason}"
    strategy = result.strategy_used.value if result.strategy_used else "none"
    return (
        f"✓ {result.tool_name} [{result.tool_id}]\n"
        f"  Score:      {result.final_score:.2f} (confidence {result.confidence_score:.2f})\n"
        f"  Task type:  {result.task_type.value}\n"
        f"  Strategy:   {strategy}\n"
        f"  Reason:     {result.reason}"
    )


async def cmd_batch(
    task_names: list[str],
    yaml_path: Path = DEFAULT_YAML,
    mode: Optional[str] = None,
    free_only: bool = False,
) -> str:
    config = load_config(yaml_path)
    engine = build_engine(config, with_monitor=False)
    results = await engine.recommend_batch(task_names, _preferences(free_only), mode=mode)

    lines = []
    for result in results:
        if result.succeeded:
            lines.append(f"  ✓ {result.task_name} → {result.tool_name} ({result.final_score:.2f})")
        else:
            lines.append(f"  ✗ {result.task_name} → {result.reason}")
    summary = BatchSummary.from_results(results)
    lines.append(
        f"\n{summary.succeeded}/{summary.total} recommended, "
        f"average score {summary.average_final_score:.2f}"
    )
    return "\n".join(lines)


async def cmd_health(yaml_path: Path = DEFAULT_YAML) -> str:
    engine = build_engine(load_config(yaml_path))
    results = await engine.monitor.tick()
    report = engine.get_health()

    lines = [f"ToolMatch Health: {report.overall.value}", "=" * 40]
    for name, check in results.items():
        lines.append(f"  {name:<16} {check.status.value:<9} {check.response_time:>8.1f}ms")
    if report.alerts:
        lines.append("")
        for alert in report.alerts:
            lines.append(f"  ⚠ [{alert.severity.value}] {alert.title}")
    return "\n".join(lines)
