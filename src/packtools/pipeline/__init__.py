"""Packaging pipeline public surface."""

from packtools.pipeline.pipeline import PackagingPipeline
from packtools.pipeline.project_store import (
    FileProjectStore,
    InMemoryProjectStore,
    ProjectStore,
)
from packtools.pipeline.providers import (
    ArtifactVerifier,
    PackageFormatContext,
    PackageFormatProvider,
    PackageFormatResult,
    RunAuditor,
)
from packtools.pipeline.workspace import temporary_directory

__all__ = [
    "ArtifactVerifier",
    "FileProjectStore",
    "InMemoryProjectStore",
    "PackageFormatContext",
    "PackageFormatProvider",
    "PackageFormatResult",
    "PackagingPipeline",
    "ProjectStore",
    "RunAuditor",
    "temporary_directory",
]
