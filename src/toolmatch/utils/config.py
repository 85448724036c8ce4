"""
Configuration for the recommendation audit trail.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class AuditConfig:
    """Where audit entries go and how the JSONL file is rotated."""

    log_dir: str = "./logs"
    file_name: str = "recommendations.jsonl"
    rotation: str = "10 MB"
    retention: str = "30 days"
    compression: str = "gz"


# Default configuration instance
DEFAULT_AUDIT_CONFIG = AuditConfig()
