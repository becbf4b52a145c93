"""
calsync.api - Journal server API module
"""

from calsync.api.journal_api import JournalAPI, parse_retry_after

__all__ = ["JournalAPI", "parse_retry_after"]
