"""Format provider, verifier, and auditor contracts."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict

from packtools.agents.handle import BuildAgentHandle
from packtools.agents.scope import AgentExecutionScope
from packtools.errors import CancellationToken
from packtools.models import (
    PackagingArtifact,
    PackagingIssue,
    PackagingProject,
    PackagingRequest,
    PackagingResult,
)


@dataclass(frozen=True)
class PackageFormatContext:
    """Inputs handed to a format provider for one run.

    ``execution_scope`` belongs to this run alone and publishes ``agent``
    while providers execute.
    """

    project: PackagingProject
    request: PackagingRequest
    working_directory: Path
    agent: BuildAgentHandle | None = None
    execution_scope: AgentExecutionScope = field(default_factory=AgentExecutionScope)


class PackageFormatResult(BaseModel):
    """Artifacts and issues produced by one provider invocation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    artifacts: tuple[PackagingArtifact, ...] = ()
    issues: tuple[PackagingIssue, ...] = ()

    @classmethod
    def empty(cls) -> PackageFormatResult:
        """Return result with no artifacts and no issues."""
        return cls()


class PackageFormatProvider(Protocol):
    """Builds one installer format.

    Ordinary build failures are reported as issues; a raised exception is
    treated as an unexpected provider failure.
    """

    @property
    def format(self) -> str:
        """Canonical format identifier, e.g. ``msix`` or ``deb``."""

    def package(
        self,
        context: PackageFormatContext,
        *,
        cancellation: CancellationToken | None = None,
    ) -> PackageFormatResult:
        """Build the package for one run.

        Args:
            context: Run inputs.
            cancellation: Optional cancellation token.
        """


class ArtifactVerifier(Protocol):
    """Post-build check applied to every produced artifact."""

    def verify(
        self, context: PackageFormatContext, artifact: PackagingArtifact
    ) -> Iterable[PackagingIssue]:
        """Verify one artifact.

        Args:
            context: Run inputs.
            artifact: Artifact to verify.
        """


class RunAuditor(Protocol):
    """Post-build capture over the whole run result."""

    def audit(
        self, context: PackageFormatContext, result: PackagingResult
    ) -> Iterable[PackagingIssue]:
        """Record audit evidence for one run.

        Args:
            context: Run inputs.
            result: Result after providers and verification.
        """
