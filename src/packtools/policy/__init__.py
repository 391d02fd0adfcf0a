"""Policy evaluation public surface."""

from packtools.policy.configuration import PolicyConfiguration
from packtools.policy.evaluator import PolicyEngineEvaluator, PolicyEvaluator
from packtools.policy.models import PolicyEvaluationContext, PolicyEvaluationResult

__all__ = [
    "PolicyConfiguration",
    "PolicyEngineEvaluator",
    "PolicyEvaluationContext",
    "PolicyEvaluationResult",
    "PolicyEvaluator",
]
