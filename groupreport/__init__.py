"""
Mail-enabled group size report shared library.
"""
# Import constants module for easy access
from . import constants
from .config import generate_sample_config, load_config
from .models import (
    GroupRecord,
    GroupType,
    ReportMode,
    ReportRow,
    SizeBucket,
    bucket_for,
    build_group_record,
    classify,
)
from .report import (
    CSV_COLUMNS,
    ReportSummary,
    build_report_filename,
    print_summary,
    row_to_record,
    summarize,
    write_report,
)
from .selection import (
    compute_fetch_size,
    parse_mode,
    resolve_cap,
    resolve_mode,
    select_groups,
)
from .utils import (
    ConnectionFailure,
    EmptySelection,
    GroupReportError,
    InvalidArguments,
    LookupFailure,
    MissingIdentifier,
    ProgressTracker,
    is_auth_error,
    setup_logging,
    write_csv,
)

__all__ = [
    # Constants
    'constants',
    # Config
    'load_config',
    'generate_sample_config',
    # Models
    'GroupRecord',
    'GroupType',
    'ReportMode',
    'ReportRow',
    'SizeBucket',
    'bucket_for',
    'build_group_record',
    'classify',
    # Selection
    'compute_fetch_size',
    'parse_mode',
    'resolve_cap',
    'resolve_mode',
    'select_groups',
    # Report
    'CSV_COLUMNS',
    'ReportSummary',
    'build_report_filename',
    'print_summary',
    'row_to_record',
    'summarize',
    'write_report',
    # Errors and utils
    'GroupReportError',
    'InvalidArguments',
    'ConnectionFailure',
    'EmptySelection',
    'MissingIdentifier',
    'LookupFailure',
    'ProgressTracker',
    'is_auth_error',
    'setup_logging',
    'write_csv',
]
