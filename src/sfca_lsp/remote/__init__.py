"""
Remote analysis.

Job-based analysis services reached over HTTP, and the bounded poller used
to wait on their jobs.
"""

from .apex_guru import (
    ApexGuruRunAction,
    ApexGuruService,
    HttpOrgConnection,
    OrgConnection,
    create_org_connection,
    decode_report,
)
from .poller import PollSession, poll_until_success

__all__ = [
    "ApexGuruRunAction",
    "ApexGuruService",
    "HttpOrgConnection",
    "OrgConnection",
    "PollSession",
    "create_org_connection",
    "decode_report",
    "poll_until_success",
]
