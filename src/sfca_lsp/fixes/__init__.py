"""
Quick fixes.

Generators propose replacement text; the workflow presents it as a diff and
applies it only if the code under it is unchanged when the user accepts.
"""

from .generators import (
    FixGenerator,
    FixTelemetryEvents,
    LLMFixGenerator,
    SuppressionFixGenerator,
    ViolationFixesGenerator,
)
from .registry import FixGeneratorRegistry
from .suggestion import CodeFixData, FixProposal, FixSuggestion
from .workflow import FixWorkflowOutcome, FixWorkflowState, SuggestFixWithDiffAction

__all__ = [
    "CodeFixData",
    "FixGenerator",
    "FixGeneratorRegistry",
    "FixProposal",
    "FixSuggestion",
    "FixTelemetryEvents",
    "FixWorkflowOutcome",
    "FixWorkflowState",
    "LLMFixGenerator",
    "SuggestFixWithDiffAction",
    "SuppressionFixGenerator",
    "ViolationFixesGenerator",
]
