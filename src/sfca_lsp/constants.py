"""
Shared constants.

Command identifiers, telemetry event names, remote analysis endpoints and
the range sentinels used across the server.
"""

from typing import FrozenSet

# --- Ranges ---
# LSP positions are uintegers, so this is the largest column a client accepts.
# Used as the "rest of the line" sentinel.
MAX_COLUMN = 2**31 - 1

# --- Diagnostics ---
DIAGNOSTIC_SOURCE_SUFFIX = "via Code Analyzer"

# Rules whose engines report misleading multi-line spans; their diagnostics are
# collapsed onto the start line until the upstream engine is fixed.
SINGLE_LINE_RULES: FrozenSet[str] = frozenset(
    {
        "ApexDoc",  # https://github.com/pmd/pmd/issues/5614
        "ApexUnitTestMethodShouldHaveIsTestAnnotation",  # https://github.com/pmd/pmd/issues/5669
        "ApexUnitTestShouldNotUseSeeAllDataTrue",  # https://github.com/pmd/pmd/issues/5904
        "AvoidGlobalModifer",  # https://github.com/pmd/pmd/issues/5668
        "ApexSharingViolations",  # https://github.com/pmd/pmd/issues/5511
        "ClassNamingConventions",  # https://github.com/pmd/pmd/issues/5905
        "MethodWithSameNameAsEnclosingClass",  # https://github.com/pmd/pmd/issues/5906
        "ExcessiveParameterList",  # https://github.com/pmd/pmd/issues/5616
    }
)

# --- Engines ---
ENGINE_PMD = "pmd"
ENGINE_APEX_GURU = "apexguru"
KNOWN_ENGINES: FrozenSet[str] = frozenset(
    {"pmd", "cpd", "eslint", "regex", "retire-js", "flow", "sfge", "apexguru"}
)

# --- Commands ---
COMMAND_RUN_ON_FILE = "sfca.runOnFile"
COMMAND_REMOVE_DIAGNOSTICS_ON_FILE = "sfca.removeDiagnosticsOnFile"
COMMAND_RUN_APEX_GURU_ON_FILE = "sfca.runApexGuruOnFile"
QF_COMMAND_DIAGNOSTICS_IN_RANGE = "sfca.removeDiagnosticsInRange"
QF_COMMAND_APPLY_VIOLATION_FIXES = "sfca.applyViolationFixes"
QF_COMMAND_SUPPRESS_ON_CLASS = "sfca.suppressPmdOnClass"
QF_COMMAND_A4D_FIX = "sfca.a4dFix"

# --- Telemetry events ---
TELEM_SUCCESSFUL_STATIC_ANALYSIS = "sfdx__codeanalyzer_static_run_complete"
TELEM_FAILED_STATIC_ANALYSIS = "sfdx__codeanalyzer_static_run_failed"
TELEM_MALFORMED_VIOLATION = "sfdx__codeanalyzer_malformed_violation"
TELEM_SUCCESSFUL_APEX_GURU_FILE_ANALYSIS = "sfdx__apexguru_file_run_complete"
TELEM_FAILED_APEX_GURU_FILE_ANALYSIS = "sfdx__apexguru_file_run_failed"
TELEM_APEX_GURU_FILE_ANALYSIS_NOT_ENABLED = "sfdx__apexguru_file_run_not_enabled"
TELEM_COMMAND_FAILED = "sfdx__codeanalyzer_command_failed"

TELEM_QF_NO_FIX_SUGGESTED = "sfdx__codeanalyzer_qf_no_fix_suggested"
TELEM_QF_FIX_SUGGESTED = "sfdx__codeanalyzer_qf_fix_suggested"
TELEM_QF_FIX_SUGGESTION_FAILED = "sfdx__codeanalyzer_qf_fix_suggestion_failed"
TELEM_QF_FIX_ACCEPTED = "sfdx__codeanalyzer_qf_fix_accepted"
TELEM_QF_FIX_REJECTED = "sfdx__codeanalyzer_qf_fix_rejected"
TELEM_QF_DIFF_FAILED = "sfdx__codeanalyzer_qf_diff_failed"
TELEM_QF_FIX_STALE = "sfdx__codeanalyzer_qf_fix_stale"

TELEM_SUPPRESSION_SUGGESTED = "sfdx__codeanalyzer_suppression_suggested"
TELEM_SUPPRESSION_SUGGESTION_FAILED = "sfdx__codeanalyzer_suppression_suggestion_failed"
TELEM_SUPPRESSION_ACCEPTED = "sfdx__codeanalyzer_suppression_accepted"
TELEM_SUPPRESSION_REJECTED = "sfdx__codeanalyzer_suppression_rejected"

TELEM_A4D_SUGGESTION = "sfdx__eGPT_suggest"
TELEM_A4D_SUGGESTION_FAILED = "sfdx__eGPT_suggest_failure"
TELEM_A4D_ACCEPT = "sfdx__eGPT_accept"
TELEM_A4D_REJECT = "sfdx__eGPT_clear"

NO_FIX_REASON_EMPTY = "empty"
NO_FIX_REASON_SAME_CODE = "same_code"

# --- ApexGuru ---
APEX_GURU_AUTH_ENDPOINT = "/services/data/v62.0/apexguru/validate"
APEX_GURU_REQUEST = "/services/data/v62.0/apexguru/request"
APEX_GURU_MAX_TIMEOUT_SECONDS = 60
APEX_GURU_RETRY_INTERVAL_MILLIS = 1000
APEX_GURU_DOCS_URL = (
    "https://help.salesforce.com/s/articleView?id=sf.apexguru_antipatterns.htm&type=5"
)
