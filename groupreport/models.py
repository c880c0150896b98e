"""
Data models for the mail-enabled group size report.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Tuple

from .constants import (
    BUCKET_UPPER_BOUNDS,
    ERROR_BUCKET,
    OPEN_ENDED_BUCKET,
    UNIFIED_GROUP_MARKER,
)


class GroupType(Enum):
    """Resolved type of a mail-enabled group."""
    DISTRIBUTION_LIST = "DistributionList"
    M365_GROUP = "M365Group"

    @property
    def tag(self) -> str:
        """Short tag used in console output."""
        return "DL" if self is GroupType.DISTRIBUTION_LIST else "M365"


class ReportMode(Enum):
    """Which group types a run reports on."""
    DL = "DL"
    M365 = "M365"
    ALL = "ALL"

    @property
    def file_tag(self) -> str:
        """Mode tag embedded in the report file name."""
        return {
            ReportMode.DL: "DistributionLists",
            ReportMode.M365: "M365Groups",
            ReportMode.ALL: "AllGroups",
        }[self]

    def includes(self, group_type: GroupType) -> bool:
        if self is ReportMode.ALL:
            return True
        if self is ReportMode.DL:
            return group_type is GroupType.DISTRIBUTION_LIST
        return group_type is GroupType.M365_GROUP


class SizeBucket(Enum):
    """Member-count size band. Values double as CSV column names."""
    EMPTY = "Empty"
    B1_10 = "1-10"
    B11_100 = "11-100"
    B101_200 = "101-200"
    B201_500 = "201-500"
    B501_1000 = "501-1000"
    B1001_5000 = "1001-5000"
    B5000_PLUS = OPEN_ENDED_BUCKET
    ERROR = ERROR_BUCKET

    @classmethod
    def numeric(cls) -> Tuple["SizeBucket", ...]:
        """All buckets except ERROR, smallest first."""
        return tuple(b for b in cls if b is not cls.ERROR)


def classify(group_types: Optional[Iterable[str]]) -> GroupType:
    """
    Resolve a group's type from its groupTypes markers.

    A group is a Microsoft 365 group iff the markers contain "Unified".
    Anything else, including no markers at all, is a Distribution List.
    """
    for marker in group_types or []:
        if isinstance(marker, str) and marker.lower() == UNIFIED_GROUP_MARKER.lower():
            return GroupType.M365_GROUP
    return GroupType.DISTRIBUTION_LIST


def bucket_for(member_count: Optional[int]) -> SizeBucket:
    """
    Map a member count to its size band.

    None is the error sentinel and maps to SizeBucket.ERROR. Bands are
    inclusive on both ends and cover every non-negative integer.
    """
    if member_count is None:
        return SizeBucket.ERROR
    if member_count < 0:
        raise ValueError(f"Member count cannot be negative: {member_count}")

    for bucket_name, upper in BUCKET_UPPER_BOUNDS:
        if member_count <= upper:
            return SizeBucket(bucket_name)
    return SizeBucket.B5000_PLUS


@dataclass(frozen=True)
class GroupRecord:
    """A mail-enabled group as fetched from the directory."""
    id: str
    display_name: str = ""
    primary_smtp_address: str = ""
    group_types: Tuple[str, ...] = ()
    resolved_type: GroupType = GroupType.DISTRIBUTION_LIST


def build_group_record(raw: Any) -> GroupRecord:
    """Build a classified GroupRecord from a Graph SDK group object."""
    group_types = tuple(getattr(raw, 'group_types', None) or [])
    return GroupRecord(
        id=getattr(raw, 'id', None) or "",
        display_name=getattr(raw, 'display_name', None) or "",
        primary_smtp_address=getattr(raw, 'mail', None) or "",
        group_types=group_types,
        resolved_type=classify(group_types),
    )


@dataclass(frozen=True)
class ReportRow:
    """
    One line of the size report.

    member_count is None when the lookup failed; size_bucket is then ERROR
    and error holds the reason.
    """
    primary_smtp_address: str
    display_name: str
    resolved_type: GroupType
    member_count: Optional[int]
    size_bucket: SizeBucket
    error: str = ""

    @property
    def is_error(self) -> bool:
        return self.size_bucket is SizeBucket.ERROR

    @classmethod
    def from_count(cls, record: GroupRecord, member_count: int) -> "ReportRow":
        return cls(
            primary_smtp_address=record.primary_smtp_address,
            display_name=record.display_name,
            resolved_type=record.resolved_type,
            member_count=member_count,
            size_bucket=bucket_for(member_count),
        )

    @classmethod
    def from_error(cls, record: GroupRecord, reason: str) -> "ReportRow":
        return cls(
            primary_smtp_address=record.primary_smtp_address,
            display_name=record.display_name,
            resolved_type=record.resolved_type,
            member_count=None,
            size_bucket=SizeBucket.ERROR,
            error=reason,
        )
