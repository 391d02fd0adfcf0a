"""Configuration audit and diff public surface."""

from packtools.audit.auditor import SnapshotRunAuditor
from packtools.audit.differ import compute_project_diff, diff_mapping
from packtools.audit.models import (
    ChangeType,
    ConfigurationDiff,
    ConfigurationSnapshot,
    PlatformDiff,
    ValueChange,
)
from packtools.audit.service import ConfigurationAuditService

__all__ = [
    "ChangeType",
    "ConfigurationAuditService",
    "ConfigurationDiff",
    "ConfigurationSnapshot",
    "PlatformDiff",
    "SnapshotRunAuditor",
    "ValueChange",
    "compute_project_diff",
    "diff_mapping",
]
