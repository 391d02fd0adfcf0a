"""Policy evaluation context and result models."""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, computed_field

from packtools.identity.models import IdentityResult
from packtools.models import PackagingIssue, PackagingProject, PackagingRequest


class PolicyEvaluationContext(BaseModel):
    """Inputs for one policy decision."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    project: PackagingProject
    request: PackagingRequest
    identity: IdentityResult | None = None


class PolicyEvaluationResult(BaseModel):
    """Allow/block decision with machine-readable issues."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    issues: tuple[PackagingIssue, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_allowed(self) -> bool:
        """True iff no Error-severity issue was produced."""
        return not any(issue.is_blocking for issue in self.issues)

    @classmethod
    def allowed(cls, warnings: Iterable[PackagingIssue] = ()) -> PolicyEvaluationResult:
        """Build allowed decision, optionally carrying warnings."""
        return cls(issues=tuple(warnings))

    @classmethod
    def blocked(cls, issues: Iterable[PackagingIssue]) -> PolicyEvaluationResult:
        """Build blocked decision.

        Args:
            issues: Issues explaining the block; at least one must be an error.

        Returns:
            Blocked decision.

        Raises:
            ValueError: If no issue has Error severity.
        """
        collected = tuple(issues)
        if not any(issue.is_blocking for issue in collected):
            raise ValueError("Error: blocked policy result needs an error issue.")
        return cls(issues=collected)
