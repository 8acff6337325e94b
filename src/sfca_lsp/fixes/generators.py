"""
Fix generators.

Each generator proposes replacement text for one diagnostic. They are
interchangeable behind the FixGenerator protocol; the workflow never knows
which kind it is driving.
"""

import json
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Dict, Optional, Protocol

from lsprotocol.types import Position, Range

from .. import constants, messages
from ..boundaries import scanner_for
from ..constants import ENGINE_PMD
from ..core.errors import FixConsolidationNotSupportedError, SfcaError
from ..diagnostics import AnalyzerDiagnostic
from ..documents import Document, get_text_in_range, language_of, split_lines
from ..suppressions import SuppressionMerger, suppression_annotation
from ..utils import file_key, uri_to_path
from .suggestion import FixProposal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FixTelemetryEvents:
    """Telemetry event names one kind of fix reports its transitions under."""
    suggested: str
    suggestion_failed: str
    accepted: str
    rejected: str


VIOLATION_FIX_EVENTS = FixTelemetryEvents(
    suggested=constants.TELEM_QF_FIX_SUGGESTED,
    suggestion_failed=constants.TELEM_QF_FIX_SUGGESTION_FAILED,
    accepted=constants.TELEM_QF_FIX_ACCEPTED,
    rejected=constants.TELEM_QF_FIX_REJECTED,
)

SUPPRESSION_EVENTS = FixTelemetryEvents(
    suggested=constants.TELEM_SUPPRESSION_SUGGESTED,
    suggestion_failed=constants.TELEM_SUPPRESSION_SUGGESTION_FAILED,
    accepted=constants.TELEM_SUPPRESSION_ACCEPTED,
    rejected=constants.TELEM_SUPPRESSION_REJECTED,
)

LLM_FIX_EVENTS = FixTelemetryEvents(
    suggested=constants.TELEM_A4D_SUGGESTION,
    suggestion_failed=constants.TELEM_A4D_SUGGESTION_FAILED,
    accepted=constants.TELEM_A4D_ACCEPT,
    rejected=constants.TELEM_A4D_REJECT,
)


class FixGenerator(Protocol):
    """
    Proposes a fix for a diagnostic, or None when it has nothing to offer.

    Attributes:
        command: The command id that triggers this generator.
        events: Telemetry names for the workflow it drives.
    """

    command: str
    events: FixTelemetryEvents

    def title(self, diagnostic: AnalyzerDiagnostic) -> str: ...

    def is_relevant(self, diagnostic: AnalyzerDiagnostic, document: Document) -> bool: ...

    async def compute_fix(self, diagnostic: AnalyzerDiagnostic, document: Document) -> Optional[FixProposal]: ...


def _belongs_to(diagnostic: AnalyzerDiagnostic, document: Document) -> bool:
    return diagnostic.file == file_key(uri_to_path(document.uri))


class ViolationFixesGenerator:
    """Offers the replacement code an engine attached to the violation."""

    command = constants.QF_COMMAND_APPLY_VIOLATION_FIXES
    events = VIOLATION_FIX_EVENTS

    def title(self, diagnostic: AnalyzerDiagnostic) -> str:
        return messages.apply_fix(diagnostic.engine, diagnostic.rule)

    def is_relevant(self, diagnostic: AnalyzerDiagnostic, document: Document) -> bool:
        # Every fix must target this document; fix_ranges is None for other files.
        return (
            not diagnostic.is_stale
            and bool(diagnostic.violation.fixes)
            and _belongs_to(diagnostic, document)
            and all(r is not None for r in diagnostic.fix_ranges)
        )

    async def compute_fix(self, diagnostic: AnalyzerDiagnostic, document: Document) -> Optional[FixProposal]:
        if not self.is_relevant(diagnostic, document):
            return None

        fixes = diagnostic.violation.fixes
        if len(fixes) > 1:
            # No merge strategy exists yet; refuse rather than pick one.
            raise FixConsolidationNotSupportedError(messages.CONSOLIDATION_NOT_SUPPORTED)

        return FixProposal(range=diagnostic.fix_ranges[0], replacement_text=fixes[0].fixed_code)


class SuppressionFixGenerator:
    """Suppresses a PMD rule on the class enclosing the diagnostic."""

    command = constants.QF_COMMAND_SUPPRESS_ON_CLASS
    events = SUPPRESSION_EVENTS

    def __init__(self, merger: Optional[SuppressionMerger] = None):
        self.merger = merger or SuppressionMerger()

    def title(self, diagnostic: AnalyzerDiagnostic) -> str:
        return messages.suppress_pmd_violations_on_class(diagnostic.rule)

    def is_relevant(self, diagnostic: AnalyzerDiagnostic, document: Document) -> bool:
        return (
            not diagnostic.is_stale
            and diagnostic.engine == ENGINE_PMD
            and bool(suppression_annotation(language_of(document), [diagnostic.rule]))
        )

    async def compute_fix(self, diagnostic: AnalyzerDiagnostic, document: Document) -> Optional[FixProposal]:
        if not self.is_relevant(diagnostic, document):
            return None

        edit = self.merger.class_level_edit(
            document.source, diagnostic.range.start.line, diagnostic.rule, language_of(document)
        )
        if edit is None:
            return None
        return FixProposal(range=edit.range, replacement_text=edit.new_text)


# --- LLM ---

class LLMService(Protocol):
    async def call_llm(self, prompt: str, guided_json_schema: Optional[str] = None) -> str: ...


class RuleDescriptionProvider(Protocol):
    async def get_rule_description(self, engine: str, rule: str) -> str: ...


class ContextScope(StrEnum):
    """How much code around a violation the LLM is shown and may rewrite."""
    CLASS = "ClassScope"
    METHOD = "MethodScope"
    VIOLATION = "ViolationScope"


# Rules the model gives useful fixes for, with the context each needs.
LLM_SUPPORTED_RULES: Dict[str, ContextScope] = {
    "ApexDoc": ContextScope.METHOD,
    "AvoidDirectAccessTriggerMap": ContextScope.METHOD,
    "InaccessibleAuraEnabledGetter": ContextScope.METHOD,
    "OverrideBothEqualsAndHashcode": ContextScope.VIOLATION,
    "TestMethodsMustBeInTestClasses": ContextScope.CLASS,
    "ApexBadCrypto": ContextScope.METHOD,
    "ApexCRUDViolation": ContextScope.METHOD,
    "ApexCSRF": ContextScope.METHOD,
    "ApexDangerousMethods": ContextScope.VIOLATION,
    "ApexInsecureEndpoint": ContextScope.METHOD,
    "ApexSharingViolations": ContextScope.VIOLATION,
    "ApexSOQLInjection": ContextScope.METHOD,
    "ApexSuggestUsingNamedCred": ContextScope.METHOD,
    "ApexXSSFromEscapeFalse": ContextScope.METHOD,
    "ApexXSSFromURLParam": ContextScope.VIOLATION,
}

GUIDED_JSON_SCHEMA = json.dumps(
    {
        "type": "object",
        "properties": {
            "explanation": {"type": "string", "description": "optional explanation"},
            "fixedCode": {
                "type": "string",
                "description": "the fixed code that replaces the entire original code",
            },
        },
        "required": ["fixedCode"],
        "additionalProperties": False,
        "$schema": "https://json-schema.org/draft/2020-12/schema",
    },
    indent=2,
)

SYSTEM_PROMPT = """You are a coding assistant running in an IDE, helping developers write correct, readable and efficient code.
Only answer questions related to software engineering. Be concise and assertive; do not describe what you will do, just do it.
Default to Apex unless asked otherwise. Never include personal identifiers or confidential business information in code."""

USER_PROMPT = """This task is to fix a violation raised by Code Analyzer, a static code analysis tool.

The following json data contains:
    - codeContext: the full context of the code
    - violatingLines: the lines within the context of the code that have violated a rule
    - violationMessage: the violation message describing an issue with the violating lines
    - ruleName: the name of the rule that has been violated
    - ruleDescription: the description of the rule that has been violated

Here is the json data:
```json
{input_json}
```

Given the information above, provide a JSON response following these instructions:
- Return a brief explanation for the changes you want to make in the 'explanation' field.
- Return the fixed code that exactly replaces the full original 'codeContext' in the 'fixedCode' field.
- The fixedCode field must only contain the exact code that can replace the original code context without any explanations.
- The fixedCode field must only fix the provided violation, and preserve the rest of the code.

The JSON response should follow the following schema:
```json
{schema}
```
"""


def make_prompt(inputs: Dict[str, str]) -> str:
    user = USER_PROMPT.format(input_json=json.dumps(inputs, indent=2), schema=GUIDED_JSON_SCHEMA)
    return (
        f"<|system|>\n{SYSTEM_PROMPT}\n<|endofprompt|>\n"
        f"<|user|>\n{user}\n<|endofprompt|>\n"
        f"<|assistant|>"
    )


def parse_llm_json(response_text: str) -> Dict[str, Any]:
    """
    Extract the JSON object from an LLM response.

    Models sometimes wrap the object in markdown fences or prose, so when the
    text does not parse as-is the outermost `{...}` is tried.

    Raises:
        SfcaError: If no JSON object can be extracted.
    """
    try:
        parsed = json.loads(response_text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    cleaned = response_text.strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            parsed = json.loads(cleaned[start : end + 1])
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass

    raise SfcaError(f"Unable to extract valid JSON from response: {response_text[:200]}...")


def expand_to_complete_lines(text: str, rng: Range) -> Range:
    lines = split_lines(text)
    end_line = min(rng.end.line, len(lines) - 1)
    return Range(
        start=Position(line=rng.start.line, character=0),
        end=Position(line=end_line, character=len(lines[end_line])),
    )


def expand_to_scope(text: str, rng: Range, scope: ContextScope, language: str) -> Range:
    """
    Expand a violation range to the code the LLM should see.

    Falls back to the violating lines when the language has no scanner or no
    enclosing method or class is found.
    """
    violation_lines = expand_to_complete_lines(text, rng)
    scanner = scanner_for(language)
    if scope == ContextScope.VIOLATION or scanner is None:
        return violation_lines

    if scope == ContextScope.CLASS:
        block = scanner.enclosing_class(text, violation_lines)
    else:
        block = scanner.enclosing_method(text, violation_lines)
    if block is None:
        logger.debug(f"No enclosing {scope} found; using the violating lines")
        return violation_lines
    return block.to_range(split_lines(text))


class LLMFixGenerator:
    """
    Asks an LLM to rewrite the code around a violation.

    Each supported rule names how much context the model gets: the violating
    lines, the enclosing method or the enclosing class. The model rewrites
    that whole context.
    """

    command = constants.QF_COMMAND_A4D_FIX
    events = LLM_FIX_EVENTS

    def __init__(self, llm_service: LLMService, rule_descriptions: RuleDescriptionProvider):
        self.llm_service = llm_service
        self.rule_descriptions = rule_descriptions

    def title(self, diagnostic: AnalyzerDiagnostic) -> str:
        return messages.fix_with_llm(diagnostic.engine, diagnostic.rule)

    def is_relevant(self, diagnostic: AnalyzerDiagnostic, document: Document) -> bool:
        return not diagnostic.is_stale and diagnostic.rule in LLM_SUPPORTED_RULES

    async def compute_fix(self, diagnostic: AnalyzerDiagnostic, document: Document) -> Optional[FixProposal]:
        if not self.is_relevant(diagnostic, document):
            return None

        text = document.source
        violation_range = expand_to_complete_lines(text, diagnostic.range)
        context_range = expand_to_scope(
            text, diagnostic.range, LLM_SUPPORTED_RULES[diagnostic.rule], language_of(document)
        )
        rule_description = await self.rule_descriptions.get_rule_description(diagnostic.engine, diagnostic.rule)

        prompt = make_prompt(
            {
                "codeContext": get_text_in_range(text, context_range),
                "violatingLines": get_text_in_range(text, violation_range),
                "violationMessage": diagnostic.message,
                "ruleName": diagnostic.rule,
                "ruleDescription": rule_description,
            }
        )
        logger.debug(f"Sending prompt to LLM:\n{prompt}")

        try:
            response_text = await self.llm_service.call_llm(prompt, GUIDED_JSON_SCHEMA)
        except Exception as e:
            raise SfcaError(f"{messages.FAILED_LLM_RESPONSE}\n{e}") from e

        try:
            response = parse_llm_json(response_text)
        except SfcaError as e:
            raise SfcaError(f"Response from LLM is not valid JSON: {e}") from e

        fixed_code = response.get("fixedCode")
        if not isinstance(fixed_code, str):
            raise SfcaError("Response from LLM is missing the 'fixedCode' property.")

        logger.debug(f"Received response from LLM:\n{json.dumps(response, indent=2)}")
        return FixProposal(
            range=context_range,
            replacement_text=fixed_code,
            explanation=response.get("explanation") or None,
        )
