"""
Constants for the mail-enabled group size report.

This module defines the magic strings and numbers used across the codebase
so the collector, the reporter and the tests agree on them.
"""

# =============================================================================
# Microsoft Graph
# =============================================================================

GRAPH_SCOPES = ['https://graph.microsoft.com/.default']

# Advanced queries ($count, $filter on groups) need eventual consistency
CONSISTENCY_LEVEL_HEADER = "ConsistencyLevel"
CONSISTENCY_LEVEL_EVENTUAL = "eventual"

MAIL_ENABLED_FILTER = "mailEnabled eq true"
GROUP_SELECT_FIELDS = ["id", "displayName", "mail", "groupTypes"]

# Graph accepts $top up to 999 on /groups
MAX_PAGE_SIZE = 999

# groupTypes marker carried by Microsoft 365 (unified) groups
UNIFIED_GROUP_MARKER = "Unified"

# M365/Graph error codes that indicate auth/permission issues
M365_AUTH_ERROR_CODES = {'Authorization_RequestDenied', 'InvalidAuthenticationToken'}
AUTH_STATUS_CODES = {401, 403}

# =============================================================================
# Default Configuration Values
# =============================================================================

DEFAULT_OUTPUT_DIR = "./group_size_output"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_OVER_FETCH_MULTIPLIER = 3
DEFAULT_TOP_N = 5
DEFAULT_WORKERS = 1
DEFAULT_PAGE_RETRY_ATTEMPTS = 3

# =============================================================================
# Size Buckets
# =============================================================================

# Inclusive upper bound of each numeric band, ascending. Counts above the
# last bound fall into the open-ended "5000+" band.
BUCKET_UPPER_BOUNDS = [
    ("Empty", 0),
    ("1-10", 10),
    ("11-100", 100),
    ("101-200", 200),
    ("201-500", 500),
    ("501-1000", 1000),
    ("1001-5000", 5000),
]
OPEN_ENDED_BUCKET = "5000+"
ERROR_BUCKET = "Error"

# =============================================================================
# Report Output
# =============================================================================

REPORT_FILE_PREFIX = "GroupMemberCounts"
REPORT_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

COLUMN_ADDRESS = "PrimarySmtpAddress"
COLUMN_DISPLAY_NAME = "DisplayName"
COLUMN_GROUP_TYPE = "GroupType"
COLUMN_MEMBERS = "Members"

FLAG_YES = "yes"
FLAG_NO = "no"
FLAG_ERROR = "error"
MEMBERS_ERROR = "ERROR"
