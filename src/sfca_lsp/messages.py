"""
User-facing message text.
"""

STALE_DIAGNOSTIC_PREFIX = "(STALE: The code has changed. Re-run the scan.)"
DEFAULT_ALTERNATIVE_LOCATION_MESSAGE = "An alternative location associated with this violation."

NO_FIX_SUGGESTED = "No fix was suggested."
FIX_IS_STALE = (
    "The code changed while the fix was being reviewed, so it was not applied. Re-run the scan."
)
EDIT_NOT_APPLIED = "The editor did not apply the suggested fix."
SUPPRESS_PMD_VIOLATIONS_ON_LINE = "Suppress all 'pmd' violations on this line"
CONSOLIDATION_NOT_SUPPORTED = (
    "Support for consolidating multiple fixes into a single fix has not been implemented yet."
)
FAILED_LLM_RESPONSE = "Unable to receive code fix suggestion from the LLM service."
DIFF_ACCEPT = "Accept"
DIFF_REJECT = "Reject"
SUGGESTION_FOR = "Suggestion for"


def diagnostic_message(severity: int, message: str) -> str:
    return f"Sev{severity}: {message}"


def suppress_pmd_violations_on_class(rule: str) -> str:
    return f"Suppress 'pmd.{rule}' on this class"


def apply_fix(engine: str, rule: str) -> str:
    return f"Apply fix for '{rule}' from '{engine}'"


def fix_with_llm(engine: str, rule: str) -> str:
    return f"Fix '{engine}.{rule}' using Agentforce"


def explanation_of_fix(explanation: str) -> str:
    return f"Fix Explanation: {explanation}"


def review_fix(file_name: str, diff_text: str) -> str:
    return f"Review the suggested change to '{file_name}':\n\n{diff_text}"


def analysis_failed(reason: str) -> str:
    return f"Analysis failed: {reason}"


def command_failed(command: str, reason: str) -> str:
    return f"Command '{command}' failed: {reason}"


def finished_scan(scanned: int, bad_files: int, violations: int) -> str:
    return (
        f"Scan complete. Analyzed {scanned} files. "
        f"{violations} violations found in {bad_files} files."
    )


def apex_guru_finished_scan(violations: int) -> str:
    return f"Scan complete. {violations} violations found."


def apex_guru_not_enabled() -> str:
    return "ApexGuru is not enabled for the connected org."


def apex_guru_unexpected_response(status: str) -> str:
    return f"ApexGuru returned an unexpected response: {status}"


def apex_guru_timeout(max_seconds: float, last_error: str) -> str:
    return f"Failed to get a successful response from ApexGuru after {max_seconds} seconds. {last_error}".rstrip()


def apex_guru_unable_to_parse(reason: str) -> str:
    return f"Unable to parse the payload from the response from ApexGuru. Error:\n{reason}"
