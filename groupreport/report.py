"""
Report serialization and summary.

Rows are written once, as a complete CSV snapshot per run. Each size band
is a yes/no/error flag column so the file stays consumable by spreadsheet
filters that predate the single GroupType/Members layout.
"""
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .constants import (
    COLUMN_ADDRESS,
    COLUMN_DISPLAY_NAME,
    COLUMN_GROUP_TYPE,
    COLUMN_MEMBERS,
    DEFAULT_TOP_N,
    FLAG_ERROR,
    FLAG_NO,
    FLAG_YES,
    MEMBERS_ERROR,
    REPORT_FILE_PREFIX,
    REPORT_TIMESTAMP_FORMAT,
)
from .models import GroupType, ReportMode, ReportRow, SizeBucket
from .utils import write_csv

logger = logging.getLogger(__name__)

BUCKET_COLUMNS = [b.value for b in SizeBucket.numeric()]
CSV_COLUMNS = [COLUMN_ADDRESS, COLUMN_DISPLAY_NAME, COLUMN_GROUP_TYPE, COLUMN_MEMBERS] + BUCKET_COLUMNS


# =============================================================================
# Serialization
# =============================================================================

def row_to_record(row: ReportRow) -> Dict[str, str]:
    """Flatten a ReportRow into the CSV column layout."""
    record = {
        COLUMN_ADDRESS: row.primary_smtp_address,
        COLUMN_DISPLAY_NAME: row.display_name,
        COLUMN_GROUP_TYPE: row.resolved_type.value,
        COLUMN_MEMBERS: MEMBERS_ERROR if row.is_error else str(row.member_count),
    }
    for bucket in SizeBucket.numeric():
        if row.is_error:
            record[bucket.value] = FLAG_ERROR
        else:
            record[bucket.value] = FLAG_YES if row.size_bucket is bucket else FLAG_NO
    return record


def build_report_filename(mode: ReportMode, when: Optional[datetime] = None) -> str:
    """Report file name with mode tag and timestamp, e.g. GroupMemberCounts_AllGroups_20260102_030405.csv"""
    when = when or datetime.now()
    return f"{REPORT_FILE_PREFIX}_{mode.file_tag}_{when.strftime(REPORT_TIMESTAMP_FORMAT)}.csv"


def write_report(
    rows: Sequence[ReportRow],
    mode: ReportMode,
    output_dir: str,
    when: Optional[datetime] = None,
) -> str:
    """Write all rows to a new CSV report in output_dir and return its path."""
    filepath = os.path.join(output_dir, build_report_filename(mode, when))
    write_csv([row_to_record(r) for r in rows], filepath, fieldnames=CSV_COLUMNS)
    logger.info(f"Wrote {len(rows)} rows to {filepath}")
    return filepath


# =============================================================================
# Summary
# =============================================================================

@dataclass
class ReportSummary:
    """Aggregated counts for one run."""
    total: int = 0
    valid_count: int = 0
    error_count: int = 0
    type_counts: Dict[GroupType, int] = field(default_factory=dict)
    bucket_counts: Dict[SizeBucket, int] = field(default_factory=dict)
    largest: List[ReportRow] = field(default_factory=list)

    def to_dict(self) -> Dict:
        """Convert to a plain dict for logging or JSON output."""
        return {
            'total': self.total,
            'valid': self.valid_count,
            'errors': self.error_count,
            'by_type': {t.value: n for t, n in self.type_counts.items()},
            'by_bucket': {b.value: n for b, n in self.bucket_counts.items()},
            'largest': [
                {'address': r.primary_smtp_address, 'type': r.resolved_type.value, 'members': r.member_count}
                for r in self.largest
            ],
        }


def summarize(rows: Sequence[ReportRow], mode: ReportMode, top_n: int = DEFAULT_TOP_N) -> ReportSummary:
    """
    Aggregate report rows.

    Error rows are excluded from the type and bucket counts and counted
    separately. Per-type counts are only filled in for ReportMode.ALL.
    The largest groups are sorted by member count descending; sorted() is
    stable, so ties keep input order.
    """
    valid = [r for r in rows if not r.is_error]

    summary = ReportSummary(
        total=len(rows),
        valid_count=len(valid),
        error_count=len(rows) - len(valid),
        bucket_counts={b: 0 for b in SizeBucket.numeric()},
    )

    if mode is ReportMode.ALL:
        summary.type_counts = {t: 0 for t in GroupType}
        for r in valid:
            summary.type_counts[r.resolved_type] += 1

    for r in valid:
        summary.bucket_counts[r.size_bucket] += 1

    if top_n > 0:
        summary.largest = sorted(valid, key=lambda r: r.member_count or 0, reverse=True)[:top_n]

    return summary


def print_summary(summary: ReportSummary, mode: ReportMode, console: Optional[Console] = None):
    """Print the run summary to the console."""
    console = console or Console()

    table = Table(title=f"Group Size Report ({mode.file_tag})", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="green", justify="right")

    table.add_row("Groups processed", f"{summary.total:,}")
    if mode is ReportMode.ALL:
        for group_type, count in summary.type_counts.items():
            table.add_row(group_type.value, f"{count:,}")
    table.add_section()
    for bucket, count in summary.bucket_counts.items():
        table.add_row(bucket.value, f"{count:,}")
    table.add_section()
    table.add_row("Errors", f"{summary.error_count:,}", style="red" if summary.error_count else None)

    console.print(Panel(table))

    if summary.largest:
        console.print(f"Top {len(summary.largest)} largest groups:")
        for row in summary.largest:
            address = row.primary_smtp_address or row.display_name or "(no address)"
            console.print(f"  [{row.resolved_type.tag}] {address}: {row.member_count:,}", markup=False)
