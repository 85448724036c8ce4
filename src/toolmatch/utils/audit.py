"""
Audit trail for recommendations.

Logs every recommendation, strategy failure and raised alert to JSONL format
with rotation support.
"""

from dataclasses import replace
from typing import Any, Dict, Optional
from pathlib import Path
from datetime import datetime, timezone
import json
import re

from loguru import logger

from src.toolmatch.retrieval.logging import RecommendationLogger
from src.toolmatch.retrieval.models import RecommendationResult, SearchContext

from .config import AuditConfig, DEFAULT_AUDIT_CONFIG

_SENSITIVE_KEYS = re.compile(
    r"(api[_-]?key|token|password|passwd|secret|credential|auth|bearer)",
    re.IGNORECASE,
)
_REDACTED = "***REDACTED***"


def _sanitize(values):
    """Recursively redact sensitive values from a dict."""
    if values is None:
        return None
    if not isinstance(values, dict):
        return values
    sanitized = {}
    for key, value in values.items():
        if _SENSITIVE_KEYS.search(str(key)):
            sanitized[key] = _REDACTED
        elif isinstance(value, dict):
            sanitized[key] = _sanitize(value)
        else:
            sanitized[key] = value
    return sanitized


def _is_audit_record(record) -> bool:
    return record["extra"].get("audit") is True


def _context_fields(context: SearchContext) -> Dict[str, Any]:
    return _sanitize({"session_id": context.session_id, "language": context.language})


class AuditLogger(RecommendationLogger):
    """
    Audit logger for recommendation events.

    Writes one JSON object per line to a dedicated loguru sink. Only records
    bound with audit=True reach the file.
    """

    def __init__(self, log_dir: Optional[str] = None, config: Optional[AuditConfig] = None, **overrides: str):
        """
        Args:
            log_dir: Directory for the JSONL file. Overrides config.log_dir.
            config: Base settings (default: DEFAULT_AUDIT_CONFIG).
            **overrides: Any other AuditConfig field, e.g. rotation="1 day".
        """
        if log_dir:
            overrides["log_dir"] = log_dir
        self.config = replace(config or DEFAULT_AUDIT_CONFIG, **overrides)

        self.log_path = Path(self.config.log_dir)
        self.log_path.mkdir(parents=True, exist_ok=True)
        self.log_file = self.log_path / self.config.file_name
        self._sink_id = logger.add(
            str(self.log_file),
            format="{message}",
            rotation=self.config.rotation,
            retention=self.config.retention,
            compression=self.config.compression,
            enqueue=True,
            filter=_is_audit_record,
        )

    async def log_recommendation(
        self,
        result: RecommendationResult,
        context: SearchContext,
    ) -> None:
        """Log one recommendation result, including null-tool results."""
        self._write_entry(
            "recommendation",
            context=_context_fields(context),
            task_id=result.task_id,
            task_type=result.task_type.value,
            tool_id=result.tool_id,
            final_score=result.final_score,
            strategy=result.strategy_used.value if result.strategy_used else None,
            status="success" if result.succeeded else "no_match",
        )

    async def log_strategy_failure(self, attempt, context: SearchContext) -> None:
        self._write_entry(
            "strategy_failure",
            context=_context_fields(context),
            strategy=attempt.strategy.value,
            kind=attempt.kind.value if attempt.kind else None,
            error=attempt.message,
            status="error",
        )

    async def log_alert(self, alert) -> None:
        self._write_entry("alert", alert=_sanitize(alert.to_dict()))

    def _write_entry(self, event_type: str, **fields: Any) -> None:
        """Write one JSONL entry to the audit log."""
        entry = {"timestamp": datetime.now(timezone.utc).isoformat(), "event_type": event_type, **fields}
        logger.bind(audit=True).info(json.dumps(entry, separators=(",", ":"), default=str))

    def close(self) -> None:
        """Detach the sink. Blocks until queued entries are written."""
        logger.remove(self._sink_id)
