#!/usr/bin/env python3
"""
Mail-Enabled Group Size Report
Counts transitive members of mail-enabled groups using Microsoft Graph API
and writes a CSV report with size bands.

Requirements:
- Azure AD App Registration with following API permissions (Application type):
  - Group.Read.All (list groups)
  - GroupMember.Read.All (transitive member counts)

Usage:
    # Set environment variables (client secret MUST be env var for security)
    export MS365_TENANT_ID="your-tenant-id"
    export MS365_CLIENT_ID="your-client-id"
    export MS365_CLIENT_SECRET="your-client-secret"

    # Distribution Lists only (default)
    python group_size_report.py

    # Microsoft 365 groups only, first 50 groups
    python group_size_report.py --m365 --test-limit 50

    # Both types
    python group_size_report.py --all
"""

import os
import sys
import asyncio
import logging
import argparse
from dataclasses import dataclass, field
from typing import List, Any, Optional, Sequence

# Check for required packages
try:
    from msgraph.graph_service_client import GraphServiceClient
    from msgraph.generated.groups.groups_request_builder import GroupsRequestBuilder
    from kiota_abstractions.base_request_configuration import RequestConfiguration
    from azure.identity import ClientSecretCredential
except ImportError:
    print("ERROR: Required packages not found.")
    print("")
    print("Please install the required packages manually:")
    print("    pip install msgraph-sdk azure-identity")
    print("")
    print("Or if using a virtual environment:")
    print("    python -m pip install msgraph-sdk azure-identity")
    sys.exit(1)

from groupreport.config import generate_sample_config, get_setting, load_config
from groupreport.constants import (
    CONSISTENCY_LEVEL_EVENTUAL,
    CONSISTENCY_LEVEL_HEADER,
    DEFAULT_LOG_LEVEL,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_OVER_FETCH_MULTIPLIER,
    DEFAULT_PAGE_RETRY_ATTEMPTS,
    DEFAULT_TOP_N,
    DEFAULT_WORKERS,
    GRAPH_SCOPES,
    GROUP_SELECT_FIELDS,
    MAIL_ENABLED_FILTER,
    MAX_PAGE_SIZE,
)
from groupreport.models import GroupRecord, GroupType, ReportMode, ReportRow, build_group_record
from groupreport.report import print_summary, summarize, write_report
from groupreport.selection import compute_fetch_size, parse_mode, resolve_cap, resolve_mode, select_groups
from groupreport.utils import (
    ConnectionFailure,
    EmptySelection,
    GroupReportError,
    InvalidArguments,
    LookupFailure,
    MissingIdentifier,
    ProgressTracker,
    describe_error,
    is_auth_error,
    retry_with_backoff,
    setup_logging,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Graph Client
# =============================================================================

def get_graph_client(tenant_id: str, client_id: str, client_secret: str) -> GraphServiceClient:
    """Create Microsoft Graph API client."""
    credential = ClientSecretCredential(
        tenant_id=tenant_id,
        client_id=client_id,
        client_secret=client_secret
    )
    return GraphServiceClient(credentials=credential, scopes=GRAPH_SCOPES)


def eventual_request_config(query_parameters: Any = None) -> RequestConfiguration:
    """Request configuration carrying the ConsistencyLevel: eventual header.

    Graph only accepts $count and advanced $filter queries on directory
    objects with this header. Reads may lag recent writes.
    """
    config = RequestConfiguration(query_parameters=query_parameters)
    config.headers.add(CONSISTENCY_LEVEL_HEADER, CONSISTENCY_LEVEL_EVENTUAL)
    return config


async def collect_all_pages(initial_response, get_next_page_func, limit: Optional[int] = None) -> List[Any]:
    """Helper to collect items from a paginated Graph API response.

    Follows odata_next_link until pages run out or `limit` items have been
    collected. A failing page propagates: a silently truncated listing
    would produce an incomplete report.

    Args:
        initial_response: The first response from a Graph API call
        get_next_page_func: Async function to get next page given a next_link
        limit: Stop after this many items (None = all pages)

    Returns:
        List of items, at most `limit` long
    """
    all_items: List[Any] = []
    response = initial_response

    while response:
        if getattr(response, 'value', None):
            all_items.extend(response.value)

        if limit is not None and len(all_items) >= limit:
            return all_items[:limit]

        next_link = getattr(response, 'odata_next_link', None)
        if not next_link:
            break
        logger.debug(f"Fetching next page ({len(all_items)} items so far)")
        response = await get_next_page_func(next_link)

    return all_items


# =============================================================================
# Group Source
# =============================================================================

async def check_group_permissions(graph_client: GraphServiceClient) -> None:
    """
    Probe the groups endpoint before starting the run.

    Raises ConnectionFailure when the session is refused. Other errors are
    left for the real listing call to report.
    """
    query_params = GroupsRequestBuilder.GroupsRequestBuilderGetQueryParameters(
        select=["id"],
        top=1,
    )
    try:
        await graph_client.groups.get(request_configuration=RequestConfiguration(query_parameters=query_params))
    except Exception as e:
        if is_auth_error(e):
            raise ConnectionFailure(
                f"Directory refused the session (check Group.Read.All / GroupMember.Read.All): {describe_error(e)}",
                original_error=e
            ) from e
        logger.warning(f"Permission probe failed: {e}")


async def fetch_groups(
    graph_client: GraphServiceClient,
    cap: int,
    mode: ReportMode,
    page_size: int = MAX_PAGE_SIZE,
    over_fetch_multiplier: int = DEFAULT_OVER_FETCH_MULTIPLIER,
    page_retry_attempts: int = DEFAULT_PAGE_RETRY_ATTEMPTS,
) -> List[Any]:
    """
    Fetch mail-enabled groups from the directory.

    With a cap, only compute_fetch_size(cap, mode) groups are requested;
    otherwise every page is read. The listing is not type-filtered on the
    server, so no ordering or type mix is assumed.
    """
    fetch_size = compute_fetch_size(cap, mode, over_fetch_multiplier)
    page_size = max(1, min(page_size, MAX_PAGE_SIZE))
    top = min(page_size, fetch_size) if fetch_size else page_size

    query_params = GroupsRequestBuilder.GroupsRequestBuilderGetQueryParameters(
        filter=MAIL_ENABLED_FILTER,
        select=GROUP_SELECT_FIELDS,
        count=True,
        top=top,
    )
    first_page_config = eventual_request_config(query_params)
    next_page_config = eventual_request_config()

    @retry_with_backoff(max_attempts=max(1, page_retry_attempts))
    async def get_first_page():
        return await graph_client.groups.get(request_configuration=first_page_config)

    @retry_with_backoff(max_attempts=max(1, page_retry_attempts))
    async def get_next_page(next_link: str):
        return await graph_client.groups.with_url(next_link).get(request_configuration=next_page_config)

    if fetch_size:
        logger.info(f"Fetching up to {fetch_size} mail-enabled groups (test limit {cap}, mode {mode.value})")
    else:
        logger.info("Fetching all mail-enabled groups...")

    try:
        response = await get_first_page()
        groups = await collect_all_pages(response, get_next_page, limit=fetch_size)
    except Exception as e:
        if is_auth_error(e):
            raise ConnectionFailure(f"Failed to list mail-enabled groups: {describe_error(e)}", original_error=e) from e
        logger.error(f"Failed to list mail-enabled groups: {e}")
        raise

    logger.info(f"Fetched {len(groups)} mail-enabled groups")
    return groups


def classify_groups(raw_groups: Sequence[Any]) -> List[GroupRecord]:
    """Build classified GroupRecords and log the type split."""
    records = [build_group_record(g) for g in raw_groups]
    dl_count = sum(1 for r in records if r.resolved_type is GroupType.DISTRIBUTION_LIST)
    logger.info(f"Classified {len(records)} groups: {dl_count} Distribution Lists, "
                f"{len(records) - dl_count} Microsoft 365 groups")
    return records


# =============================================================================
# Member-Count Aggregator
# =============================================================================

async def count_transitive_members(graph_client: GraphServiceClient, group_id: str) -> int:
    """
    Count members of a group including those inherited through nested groups.

    Raises MissingIdentifier without calling Graph when group_id is blank,
    and LookupFailure when the call fails or returns something other than
    a non-negative integer.
    """
    if not group_id or not str(group_id).strip():
        raise MissingIdentifier("Group has no identifier")

    try:
        count = await graph_client.groups.by_group_id(group_id).transitive_members.count.get(
            request_configuration=eventual_request_config()
        )
    except Exception as e:
        raise LookupFailure(describe_error(e), group_id=group_id) from e

    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        raise LookupFailure(f"Unexpected member count response: {count!r}", group_id=group_id)
    return count


@dataclass
class AggregationResult:
    """Rows produced by aggregate_member_counts, in input order."""
    rows: List[ReportRow] = field(default_factory=list)
    error_count: int = 0


async def aggregate_member_counts(
    graph_client: GraphServiceClient,
    records: Sequence[GroupRecord],
    workers: int = DEFAULT_WORKERS,
    tracker: Optional[ProgressTracker] = None,
) -> AggregationResult:
    """
    Look up the transitive member count of every record.

    Each record yields exactly one row. A failed lookup becomes an error
    row and processing moves on to the next group. With workers > 1 up to
    that many lookups run at once; rows still come back in input order.
    """
    semaphore = asyncio.Semaphore(max(1, workers))

    async def process(record: GroupRecord) -> ReportRow:
        name = record.display_name or record.primary_smtp_address or record.id or "(unnamed)"
        async with semaphore:
            if tracker:
                tracker.update_task(name)
            try:
                count = await count_transitive_members(graph_client, record.id)
            except MissingIdentifier as e:
                logger.warning(f"Skipping group '{name}': {e}")
                row = ReportRow.from_error(record, str(e))
            except LookupFailure as e:
                logger.warning(f"Member count lookup failed for group '{name}': {e.reason}")
                row = ReportRow.from_error(record, e.reason)
            else:
                logger.debug(f"Group '{name}' has {count} transitive members")
                row = ReportRow.from_count(record, count)
        if tracker:
            tracker.complete_group(failed=row.is_error)
        return row

    if workers <= 1:
        rows = [await process(record) for record in records]
    else:
        rows = list(await asyncio.gather(*(process(record) for record in records)))

    error_count = sum(1 for r in rows if r.is_error)
    logger.info(f"Counted members for {len(rows)} groups ({error_count} errors)")
    return AggregationResult(rows=rows, error_count=error_count)


# =============================================================================
# Run
# =============================================================================

async def run_report(
    graph_client: GraphServiceClient,
    mode: ReportMode,
    cap: int,
    output_dir: str,
    page_size: int = MAX_PAGE_SIZE,
    over_fetch_multiplier: int = DEFAULT_OVER_FETCH_MULTIPLIER,
    page_retry_attempts: int = DEFAULT_PAGE_RETRY_ATTEMPTS,
    workers: int = DEFAULT_WORKERS,
    top_n: int = DEFAULT_TOP_N,
    show_progress: bool = True,
) -> Optional[str]:
    """
    Run the whole pipeline and return the report path.

    Returns None, without writing a file, when no group matches. The
    report is only written once every group has been processed.
    """
    raw_groups = await fetch_groups(
        graph_client, cap, mode,
        page_size=page_size,
        over_fetch_multiplier=over_fetch_multiplier,
        page_retry_attempts=page_retry_attempts,
    )
    records = classify_groups(raw_groups)

    try:
        selected = select_groups(records, mode, cap)
    except EmptySelection as e:
        logger.info(str(e))
        print(f"Nothing to process: {e}. No report written.")
        return None

    with ProgressTracker("Member counts", total_groups=len(selected), show_progress=show_progress) as tracker:
        result = await aggregate_member_counts(graph_client, selected, workers=workers, tracker=tracker)

    report_file = write_report(result.rows, mode, output_dir)

    summary = summarize(result.rows, mode, top_n=top_n)
    print_summary(summary, mode)
    if result.error_count:
        print(f"{result.error_count} groups could not be counted; see the log for details.")
    print(f"Report saved: {report_file}")
    return report_file


# =============================================================================
# Main Entry Point
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Mail-Enabled Group Size Report',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Using environment variables (client secret MUST be env var)
    export MS365_TENANT_ID="your-tenant-id"
    export MS365_CLIENT_ID="your-client-id"
    export MS365_CLIENT_SECRET="your-client-secret"
    python group_size_report.py

    # Microsoft 365 groups only, first 25
    python group_size_report.py --m365 --test-limit 25

    # All mail-enabled groups, 5 concurrent lookups
    python group_size_report.py --all --workers 5

Required Azure AD App Permissions (Application type):
    - Group.Read.All
    - GroupMember.Read.All

Security Note:
    Client secrets must be provided via MS365_CLIENT_SECRET environment
    variable to avoid exposing secrets in shell history or process listings.
        """
    )

    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument('--dl', action='store_true',
                            help='Report on Distribution Lists only (default)')
    mode_group.add_argument('--m365', action='store_true',
                            help='Report on Microsoft 365 groups only')
    mode_group.add_argument('--all', action='store_true',
                            help='Report on both Distribution Lists and Microsoft 365 groups')

    parser.add_argument('--test-limit', type=int, default=None, metavar='N',
                        help='Process at most N groups (0 = no limit)')
    parser.add_argument('--tenant-id', default=None,
                        help='Azure AD tenant ID (or set MS365_TENANT_ID env var)')
    parser.add_argument('--client-id', default=None,
                        help='Azure AD application (client) ID (or set MS365_CLIENT_ID env var)')
    # Client secret is env-var only for security (no CLI arg to avoid shell history exposure)
    parser.add_argument('--output-dir', '-o', default=None,
                        help=f'Output directory (default: {DEFAULT_OUTPUT_DIR})')
    parser.add_argument('--config', default=None,
                        help='Path to YAML config file')
    parser.add_argument('--generate-config', action='store_true',
                        help='Print a sample config file and exit')
    parser.add_argument('--workers', type=int, default=None,
                        help='Concurrent member count lookups (default: 1)')
    parser.add_argument('--top-n', type=int, default=None,
                        help='Largest groups to list in the summary (default: 5)')
    parser.add_argument('--page-size', type=int, default=None,
                        help='Groups per Graph page (default: 999)')
    parser.add_argument('--over-fetch-multiplier', type=int, default=None,
                        help='Raw groups fetched per requested group in single-type modes (default: 3)')
    parser.add_argument('--no-progress', action='store_true',
                        help='Disable the progress bar')
    parser.add_argument('--log-level', default=None,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: INFO)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging')
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.generate_config:
        print(generate_sample_config())
        return 0

    try:
        config = load_config(args)
    except (OSError, ValueError) as e:
        print(f"ERROR: Invalid configuration: {e}")
        return 2

    output_dir = config.get('output') or DEFAULT_OUTPUT_DIR
    log_level = 'DEBUG' if args.verbose else (config.get('log_level') or DEFAULT_LOG_LEVEL)
    setup_logging(log_level, output_dir)

    try:
        if args.dl or args.m365 or args.all:
            mode = resolve_mode(dl=args.dl, m365=args.m365, all_groups=args.all)
        else:
            mode = parse_mode(config.get('mode')) or ReportMode.DL
        cap = resolve_cap(config.get('test_limit'))
    except InvalidArguments as e:
        print(f"ERROR: {e}")
        return 2

    tenant_id = get_setting(config, 'm365.tenant_id')
    client_id = get_setting(config, 'm365.client_id')
    # Get client secret from environment only (security: not from CLI args)
    client_secret = os.environ.get('MS365_CLIENT_SECRET')

    if not tenant_id or not client_id or not client_secret:
        print("ERROR: Missing credentials. Please provide:")
        print("  --tenant-id or MS365_TENANT_ID environment variable")
        print("  --client-id or MS365_CLIENT_ID environment variable")
        print("  MS365_CLIENT_SECRET environment variable (required for security)")
        print("\nRun with --help for more information.")
        return 1

    print(f"Tenant: {tenant_id[:8]}...{tenant_id[-4:]}")
    print(f"Mode:   {mode.file_tag}" + (f" (test limit {cap})" if cap else ""))
    print(f"Output: {output_dir}\n")

    try:
        logger.info("Initializing Microsoft Graph client...")
        graph_client = get_graph_client(tenant_id, client_id, client_secret)
    except Exception as e:
        print(f"ERROR: Failed to initialize Graph client: {e}")
        return 1

    async def _run() -> Optional[str]:
        await check_group_permissions(graph_client)
        return await run_report(
            graph_client, mode, cap, output_dir,
            page_size=config.get('page_size', MAX_PAGE_SIZE),
            over_fetch_multiplier=config.get('over_fetch_multiplier', DEFAULT_OVER_FETCH_MULTIPLIER),
            page_retry_attempts=config.get('page_retry_attempts', DEFAULT_PAGE_RETRY_ATTEMPTS),
            workers=config.get('workers', DEFAULT_WORKERS),
            top_n=config.get('top_n', DEFAULT_TOP_N),
            show_progress=not args.no_progress,
        )

    try:
        asyncio.run(_run())
    except GroupReportError as e:
        logger.error(str(e))
        print(f"ERROR: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted. No report written.")
        return 130
    except Exception as e:
        logger.error(f"Report run failed: {e}")
        print(f"ERROR: Report run failed: {e}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
