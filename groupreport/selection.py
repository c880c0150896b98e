"""
Mode resolution, fetch sizing and selection of groups to report on.
"""
import logging
from typing import Iterable, List, Optional

from .constants import DEFAULT_OVER_FETCH_MULTIPLIER
from .models import GroupRecord, ReportMode
from .utils import EmptySelection, InvalidArguments

logger = logging.getLogger(__name__)


def resolve_mode(dl: bool = False, m365: bool = False, all_groups: bool = False) -> ReportMode:
    """
    Turn the three selection flags into a ReportMode.

    No flag means Distribution Lists only. More than one flag is an error.
    """
    chosen = [mode for mode, flag in (
        (ReportMode.DL, dl),
        (ReportMode.M365, m365),
        (ReportMode.ALL, all_groups),
    ) if flag]

    if len(chosen) > 1:
        names = ", ".join(m.value for m in chosen)
        raise InvalidArguments(f"Only one mode may be selected, got: {names}")
    return chosen[0] if chosen else ReportMode.DL


def parse_mode(value: Optional[str]) -> Optional[ReportMode]:
    """Parse a mode name from config ("dl", "m365", "all")."""
    if value is None or value == "":
        return None
    try:
        return ReportMode(str(value).strip().upper())
    except ValueError:
        raise InvalidArguments(f"Unknown mode '{value}'. Expected one of: dl, m365, all") from None


def resolve_cap(test_limit: Optional[int]) -> int:
    """Normalize the processing cap. None and 0 both mean no limit (returns 0)."""
    if test_limit is None:
        return 0
    try:
        cap = int(test_limit)
    except (TypeError, ValueError):
        raise InvalidArguments(f"Test limit must be an integer, got '{test_limit}'") from None
    if cap < 0:
        raise InvalidArguments(f"Test limit cannot be negative, got {cap}")
    return cap


def compute_fetch_size(
    cap: int,
    mode: ReportMode,
    multiplier: int = DEFAULT_OVER_FETCH_MULTIPLIER,
) -> Optional[int]:
    """
    Number of raw groups to request from the directory.

    Returns None for an exhaustive fetch. Type filtering happens after
    retrieval, so single-type modes over-fetch by `multiplier` to leave
    enough groups of the wanted type. This is a hint, not a guarantee: a
    tenant where the wanted type is rarer than 1/multiplier can still come
    back short.
    """
    if cap <= 0:
        return None
    if mode is ReportMode.ALL:
        return cap
    return cap * max(1, multiplier)


def select_groups(records: Iterable[GroupRecord], mode: ReportMode, cap: int = 0) -> List[GroupRecord]:
    """
    Filter records to the requested mode, then apply the cap.

    Input order is preserved. Raises EmptySelection when nothing is left.
    """
    selected = [r for r in records if mode.includes(r.resolved_type)]

    if cap > 0:
        if len(selected) < cap:
            logger.warning(f"Only {len(selected)} groups matched mode {mode.value} "
                           f"(test limit {cap}); the over-fetch may have been too small")
        selected = selected[:cap]

    if not selected:
        raise EmptySelection(f"No groups matched mode {mode.value}")

    logger.info(f"Selected {len(selected)} groups for mode {mode.value}")
    return selected
