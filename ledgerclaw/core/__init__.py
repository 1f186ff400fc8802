"""
LedgerClaw core: rules, classification, inference, summarization and the
pipeline state machine.
"""

from .classifier import Classifier, ClassifyResult, Decision, decide
from .context import AppContext
from .gateway import InferenceGateway
from .pipeline import PipelineOrchestrator, RunOutcome
from .rules import MergedRules, RuleRepository, merge_rules

__all__ = [
    "AppContext",
    "Classifier",
    "ClassifyResult",
    "Decision",
    "InferenceGateway",
    "MergedRules",
    "PipelineOrchestrator",
    "RuleRepository",
    "RunOutcome",
    "decide",
    "merge_rules",
]
