"""
Tests for the mail-enabled group size report collector using unittest.mock.

Covers:
- Graph client creation
- Group listing: filter/header/top, pagination, over-fetch bounds, auth errors
- Transitive member counts and per-group failure isolation
- Aggregation order, error counting and bounded concurrency
- End-to-end runs through run_report and main
"""
import asyncio
import csv
import glob
import logging
import os
import sys
from unittest.mock import Mock, AsyncMock, patch

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from group_size_report import (
    aggregate_member_counts,
    check_group_permissions,
    classify_groups,
    collect_all_pages,
    count_transitive_members,
    fetch_groups,
    get_graph_client,
    main,
    run_report,
)
from groupreport.models import GroupRecord, GroupType, ReportMode, SizeBucket
from groupreport.report import summarize
from groupreport.utils import ConnectionFailure, LookupFailure, MissingIdentifier, ProgressTracker


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def mock_graph_client():
    """Create a mock Microsoft Graph client."""
    return Mock()


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Isolate main() from real credentials and default config files."""
    for name in list(os.environ):
        if name.startswith("GSR_") or name.startswith("MS365_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    yield
    for handler in list(logging.getLogger().handlers):
        handler.close()
    logging.getLogger().handlers.clear()


# =============================================================================
# Helper Functions
# =============================================================================

class ODataError(Exception):
    """Stand-in for msgraph's ODataError (detected by class name)."""
    def __init__(self, code="", message="", status=None):
        super().__init__(message)
        self.error = Mock()
        self.error.code = code
        self.error.message = message
        self.response_status_code = status


def create_mock_group(
    group_id,
    display_name: str,
    mail: str = None,
    group_types: list = None,
):
    """Create a mock mail-enabled group object."""
    group = Mock()
    group.id = group_id
    group.display_name = display_name
    group.mail = mail if mail is not None else f"{display_name.lower().replace(' ', '-')}@contoso.com"
    group.group_types = group_types or []
    return group


def create_mock_page(groups, next_link=None):
    """Create a mock paged Graph response."""
    page = Mock()
    page.value = groups
    page.odata_next_link = next_link
    return page


def setup_member_counts(mock_graph_client, counts):
    """Route by_group_id(id).transitive_members.count.get to a per-id result or exception."""
    def by_group_id(group_id):
        builder = Mock()
        result = counts[group_id]
        if isinstance(result, BaseException):
            builder.transitive_members.count.get = AsyncMock(side_effect=result)
        else:
            builder.transitive_members.count.get = AsyncMock(return_value=result)
        return builder

    mock_graph_client.groups.by_group_id.side_effect = by_group_id


def make_record(group_id, name, group_type=GroupType.DISTRIBUTION_LIST):
    return GroupRecord(
        id=group_id,
        display_name=name,
        primary_smtp_address=f"{name.lower()}@contoso.com",
        resolved_type=group_type,
    )


def requested_config(mock_get):
    return mock_get.call_args.kwargs['request_configuration']


# =============================================================================
# Graph Client Tests
# =============================================================================

class TestGraphClient:
    """Tests for Microsoft Graph client creation."""

    def test_get_graph_client(self):
        """Test creating Graph client with credentials."""
        with patch('group_size_report.ClientSecretCredential') as mock_cred:
            with patch('group_size_report.GraphServiceClient') as mock_client:
                mock_cred.return_value = Mock()
                mock_client.return_value = Mock()

                client = get_graph_client(
                    tenant_id="tenant-123",
                    client_id="client-123",
                    client_secret="secret-123"
                )

                mock_cred.assert_called_once_with(
                    tenant_id="tenant-123",
                    client_id="client-123",
                    client_secret="secret-123"
                )
                mock_client.assert_called_once_with(
                    credentials=mock_cred.return_value,
                    scopes=['https://graph.microsoft.com/.default']
                )
                assert client is not None


class TestCheckGroupPermissions:
    """Tests for the permission probe."""

    def test_probe_ok(self, mock_graph_client):
        mock_graph_client.groups.get = AsyncMock(return_value=create_mock_page([]))
        asyncio.run(check_group_permissions(mock_graph_client))
        assert mock_graph_client.groups.get.call_count == 1

    def test_probe_auth_error(self, mock_graph_client):
        mock_graph_client.groups.get = AsyncMock(side_effect=ODataError(code="Authorization_RequestDenied"))
        with pytest.raises(ConnectionFailure):
            asyncio.run(check_group_permissions(mock_graph_client))

    def test_probe_other_error_not_fatal(self, mock_graph_client):
        mock_graph_client.groups.get = AsyncMock(side_effect=Exception("Service unavailable"))
        asyncio.run(check_group_permissions(mock_graph_client))


# =============================================================================
# Pagination Tests
# =============================================================================

class TestCollectAllPages:
    """Tests for collect_all_pages helper."""

    def test_single_page(self):
        page = create_mock_page(["a", "b"])
        get_next = AsyncMock()
        assert asyncio.run(collect_all_pages(page, get_next)) == ["a", "b"]
        get_next.assert_not_called()

    def test_follows_next_link(self):
        first = create_mock_page(["a", "b"], next_link="https://graph/next1")
        second = create_mock_page(["c"], next_link=None)
        get_next = AsyncMock(return_value=second)

        assert asyncio.run(collect_all_pages(first, get_next)) == ["a", "b", "c"]
        get_next.assert_called_once_with("https://graph/next1")

    def test_stops_at_limit(self):
        first = create_mock_page(["a", "b"], next_link="https://graph/next1")
        second = create_mock_page(["c", "d"], next_link="https://graph/next2")
        get_next = AsyncMock(return_value=second)

        assert asyncio.run(collect_all_pages(first, get_next, limit=3)) == ["a", "b", "c"]
        assert get_next.call_count == 1

    def test_null_response(self):
        assert asyncio.run(collect_all_pages(None, AsyncMock())) == []

    def test_page_failure_propagates(self):
        first = create_mock_page(["a"], next_link="https://graph/next1")
        get_next = AsyncMock(side_effect=Exception("API Error"))
        with pytest.raises(Exception, match="API Error"):
            asyncio.run(collect_all_pages(first, get_next))


# =============================================================================
# Group Source Tests
# =============================================================================

class TestFetchGroups:
    """Tests for fetch_groups."""

    def test_query_uses_mail_enabled_filter_and_eventual_consistency(self, mock_graph_client):
        mock_graph_client.groups.get = AsyncMock(return_value=create_mock_page([]))

        asyncio.run(fetch_groups(mock_graph_client, 0, ReportMode.ALL))

        config = requested_config(mock_graph_client.groups.get)
        assert config.query_parameters.filter == "mailEnabled eq true"
        assert config.query_parameters.count is True
        assert set(config.query_parameters.select) == {"id", "displayName", "mail", "groupTypes"}
        assert "eventual" in config.headers.get("ConsistencyLevel")

    def test_no_cap_reads_every_page(self, mock_graph_client):
        first = create_mock_page([create_mock_group(f"g-{i}", f"Group {i}") for i in range(3)],
                                 next_link="https://graph.microsoft.com/v1.0/groups?$skiptoken=x")
        second = create_mock_page([create_mock_group("g-3", "Group 3")])
        mock_graph_client.groups.get = AsyncMock(return_value=first)
        mock_graph_client.groups.with_url.return_value.get = AsyncMock(return_value=second)

        groups = asyncio.run(fetch_groups(mock_graph_client, 0, ReportMode.DL))

        assert len(groups) == 4
        assert requested_config(mock_graph_client.groups.get).query_parameters.top == 999
        mock_graph_client.groups.with_url.assert_called_once_with(
            "https://graph.microsoft.com/v1.0/groups?$skiptoken=x")

    def test_single_type_mode_over_fetches(self, mock_graph_client):
        """A cap of N in DL/M365 mode requests 3N raw groups."""
        mock_graph_client.groups.get = AsyncMock(return_value=create_mock_page([]))

        asyncio.run(fetch_groups(mock_graph_client, 10, ReportMode.DL))
        assert requested_config(mock_graph_client.groups.get).query_parameters.top == 30

        asyncio.run(fetch_groups(mock_graph_client, 10, ReportMode.M365))
        assert requested_config(mock_graph_client.groups.get).query_parameters.top == 30

    def test_all_mode_fetches_exactly_cap(self, mock_graph_client):
        mock_graph_client.groups.get = AsyncMock(return_value=create_mock_page([]))

        asyncio.run(fetch_groups(mock_graph_client, 10, ReportMode.ALL))

        assert requested_config(mock_graph_client.groups.get).query_parameters.top == 10

    def test_capped_fetch_spans_pages_and_truncates(self, mock_graph_client):
        first = create_mock_page([create_mock_group(f"g-{i}", f"Group {i}") for i in range(4)],
                                 next_link="https://graph/next")
        second = create_mock_page([create_mock_group(f"g-{i}", f"Group {i}") for i in range(4, 8)])
        mock_graph_client.groups.get = AsyncMock(return_value=first)
        mock_graph_client.groups.with_url.return_value.get = AsyncMock(return_value=second)

        groups = asyncio.run(fetch_groups(mock_graph_client, 2, ReportMode.DL, page_size=4))

        # 2 * 3 = 6 groups wanted, pages of 4
        assert len(groups) == 6
        assert requested_config(mock_graph_client.groups.get).query_parameters.top == 4

    def test_auth_error_is_connection_failure(self, mock_graph_client):
        mock_graph_client.groups.get = AsyncMock(side_effect=ODataError(code="InvalidAuthenticationToken"))

        with pytest.raises(ConnectionFailure):
            asyncio.run(fetch_groups(mock_graph_client, 0, ReportMode.DL, page_retry_attempts=1))
        assert mock_graph_client.groups.get.call_count == 1

    def test_other_error_propagates(self, mock_graph_client):
        mock_graph_client.groups.get = AsyncMock(side_effect=Exception("API Error"))

        with pytest.raises(Exception, match="API Error"):
            asyncio.run(fetch_groups(mock_graph_client, 0, ReportMode.DL, page_retry_attempts=1))


class TestClassifyGroups:
    """Tests for classify_groups."""

    def test_classify_groups(self):
        raw = [
            create_mock_group("g-1", "Sales", group_types=[]),
            create_mock_group("g-2", "Project", group_types=["Unified"]),
        ]
        records = classify_groups(raw)
        assert [r.resolved_type for r in records] == [GroupType.DISTRIBUTION_LIST, GroupType.M365_GROUP]
        assert records[1].primary_smtp_address == "project@contoso.com"


# =============================================================================
# Member Count Tests
# =============================================================================

class TestCountTransitiveMembers:
    """Tests for count_transitive_members."""

    def test_count(self, mock_graph_client):
        setup_member_counts(mock_graph_client, {"g-1": 42})

        assert asyncio.run(count_transitive_members(mock_graph_client, "g-1")) == 42
        mock_graph_client.groups.by_group_id.assert_called_once_with("g-1")

    def test_request_uses_eventual_consistency(self, mock_graph_client):
        builder = Mock()
        builder.transitive_members.count.get = AsyncMock(return_value=3)
        mock_graph_client.groups.by_group_id.return_value = builder

        asyncio.run(count_transitive_members(mock_graph_client, "g-1"))

        config = requested_config(builder.transitive_members.count.get)
        assert "eventual" in config.headers.get("ConsistencyLevel")

    @pytest.mark.parametrize("group_id", [None, "", "   "])
    def test_missing_identifier_makes_no_call(self, mock_graph_client, group_id):
        with pytest.raises(MissingIdentifier):
            asyncio.run(count_transitive_members(mock_graph_client, group_id))
        mock_graph_client.groups.by_group_id.assert_not_called()

    def test_api_error_is_lookup_failure(self, mock_graph_client):
        setup_member_counts(mock_graph_client, {"g-1": ODataError(code="Request_ResourceNotFound",
                                                                   message="Group not found", status=404)})

        with pytest.raises(LookupFailure) as exc_info:
            asyncio.run(count_transitive_members(mock_graph_client, "g-1"))
        assert exc_info.value.reason == "Request_ResourceNotFound: Group not found"
        assert exc_info.value.group_id == "g-1"

    def test_permission_error_is_lookup_failure(self, mock_graph_client):
        setup_member_counts(mock_graph_client, {"g-1": ODataError(code="Authorization_RequestDenied", status=403)})

        with pytest.raises(LookupFailure):
            asyncio.run(count_transitive_members(mock_graph_client, "g-1"))

    @pytest.mark.parametrize("bad_result", [None, "12", -1, True])
    def test_unexpected_result_is_lookup_failure(self, mock_graph_client, bad_result):
        setup_member_counts(mock_graph_client, {"g-1": bad_result})

        with pytest.raises(LookupFailure):
            asyncio.run(count_transitive_members(mock_graph_client, "g-1"))


class TestAggregateMemberCounts:
    """Tests for aggregate_member_counts."""

    def test_one_row_per_group_in_order(self, mock_graph_client):
        records = [make_record("g-1", "Alpha"), make_record("g-2", "Beta"), make_record("g-3", "Gamma")]
        setup_member_counts(mock_graph_client, {"g-1": 7, "g-2": 0, "g-3": 6000})

        result = asyncio.run(aggregate_member_counts(mock_graph_client, records))

        assert [r.display_name for r in result.rows] == ["Alpha", "Beta", "Gamma"]
        assert [r.member_count for r in result.rows] == [7, 0, 6000]
        assert [r.size_bucket for r in result.rows] == [SizeBucket.B1_10, SizeBucket.EMPTY, SizeBucket.B5000_PLUS]
        assert result.error_count == 0

    def test_failure_does_not_stop_run(self, mock_graph_client, caplog):
        records = [make_record("g-1", "Alpha"), make_record("g-2", "Beta"), make_record("g-3", "Gamma")]
        setup_member_counts(mock_graph_client, {"g-1": 7, "g-2": Exception("Service unavailable"), "g-3": 12})

        with caplog.at_level("WARNING"):
            result = asyncio.run(aggregate_member_counts(mock_graph_client, records))

        assert len(result.rows) == 3
        assert result.error_count == 1
        assert result.rows[1].is_error
        assert result.rows[1].error == "Service unavailable"
        assert result.rows[2].member_count == 12
        assert "Beta" in caplog.text

    def test_missing_identifier_row(self, mock_graph_client):
        records = [make_record("", "NoId"), make_record("g-2", "Beta")]
        setup_member_counts(mock_graph_client, {"g-2": 3})

        result = asyncio.run(aggregate_member_counts(mock_graph_client, records))

        assert result.rows[0].is_error
        assert result.rows[0].size_bucket is SizeBucket.ERROR
        assert result.rows[1].member_count == 3
        assert result.error_count == 1

    def test_all_failures(self, mock_graph_client):
        records = [make_record("g-1", "Alpha"), make_record("g-2", "Beta")]
        setup_member_counts(mock_graph_client, {"g-1": Exception("x"), "g-2": Exception("y")})

        result = asyncio.run(aggregate_member_counts(mock_graph_client, records))

        assert result.error_count == 2
        assert all(r.is_error for r in result.rows)

    def test_concurrent_workers_keep_order(self, mock_graph_client):
        records = [make_record(f"g-{i}", f"Group{i}") for i in range(20)]
        counts = {f"g-{i}": i * 10 for i in range(20)}
        counts["g-5"] = Exception("throttled")
        setup_member_counts(mock_graph_client, counts)

        result = asyncio.run(aggregate_member_counts(mock_graph_client, records, workers=5))

        assert [r.display_name for r in result.rows] == [f"Group{i}" for i in range(20)]
        assert result.rows[5].is_error
        assert result.rows[19].member_count == 190
        assert result.error_count == 1

    def test_tracker_updated(self, mock_graph_client):
        records = [make_record("g-1", "Alpha"), make_record("", "NoId")]
        setup_member_counts(mock_graph_client, {"g-1": 1})

        with ProgressTracker("Member counts", total_groups=2, show_progress=False) as tracker:
            asyncio.run(aggregate_member_counts(mock_graph_client, records, tracker=tracker))

        assert tracker.completed_groups == 2
        assert tracker.error_count == 1

    def test_idempotent_rows(self, mock_graph_client):
        records = [make_record("g-1", "Alpha"), make_record("g-2", "Beta")]
        setup_member_counts(mock_graph_client, {"g-1": 150, "g-2": Exception("gone")})

        first = asyncio.run(aggregate_member_counts(mock_graph_client, records))
        second = asyncio.run(aggregate_member_counts(mock_graph_client, records))

        assert first.rows == second.rows


# =============================================================================
# End-to-end Tests
# =============================================================================

def setup_scenario(mock_graph_client):
    """Three mail-enabled groups: an empty DL, a 150-member M365 group and a group without an id."""
    groups = [
        create_mock_group("g-dl", "Empty List", group_types=[]),
        create_mock_group("g-m365", "Project Team", group_types=["Unified"]),
        create_mock_group(None, "Broken Group", group_types=[]),
    ]
    mock_graph_client.groups.get = AsyncMock(return_value=create_mock_page(groups))
    setup_member_counts(mock_graph_client, {"g-dl": 0, "g-m365": 150})


class TestRunReport:
    """End-to-end tests for run_report."""

    def test_all_mode_scenario(self, mock_graph_client, tmp_path, capsys):
        setup_scenario(mock_graph_client)

        report_file = asyncio.run(run_report(
            mock_graph_client, ReportMode.ALL, 0, str(tmp_path), show_progress=False))

        with open(report_file, newline='') as f:
            rows = list(csv.DictReader(f))

        assert len(rows) == 3
        assert rows[0]["GroupType"] == "DistributionList"
        assert rows[0]["Members"] == "0"
        assert rows[0]["Empty"] == "yes"
        assert rows[1]["GroupType"] == "M365Group"
        assert rows[1]["Members"] == "150"
        assert rows[1]["101-200"] == "yes"
        assert rows[2]["Members"] == "ERROR"
        assert rows[2]["Empty"] == "error"

        output = capsys.readouterr().out
        assert "Errors" in output
        assert "1 groups could not be counted" in output
        assert output.count(report_file) == 1
        assert "AllGroups" in os.path.basename(report_file)

    def test_all_mode_scenario_summary(self, mock_graph_client, tmp_path):
        setup_scenario(mock_graph_client)
        records = classify_groups(mock_graph_client.groups.get.return_value.value)

        result = asyncio.run(aggregate_member_counts(mock_graph_client, records))
        summary = summarize(result.rows, ReportMode.ALL)

        assert summary.total == 3
        assert summary.valid_count == 2
        assert summary.error_count == 1
        assert summary.bucket_counts[SizeBucket.EMPTY] == 1
        assert summary.bucket_counts[SizeBucket.B101_200] == 1
        assert summary.type_counts == {GroupType.DISTRIBUTION_LIST: 1, GroupType.M365_GROUP: 1}

    def test_mode_filters_before_counting(self, mock_graph_client, tmp_path):
        setup_scenario(mock_graph_client)

        report_file = asyncio.run(run_report(
            mock_graph_client, ReportMode.M365, 0, str(tmp_path), show_progress=False))

        with open(report_file, newline='') as f:
            rows = list(csv.DictReader(f))
        assert [r["DisplayName"] for r in rows] == ["Project Team"]
        mock_graph_client.groups.by_group_id.assert_called_once_with("g-m365")

    def test_cap_limits_processing(self, mock_graph_client, tmp_path):
        setup_scenario(mock_graph_client)

        report_file = asyncio.run(run_report(
            mock_graph_client, ReportMode.DL, 1, str(tmp_path), show_progress=False))

        with open(report_file, newline='') as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 1
        assert requested_config(mock_graph_client.groups.get).query_parameters.top == 3

    def test_empty_selection_writes_nothing(self, mock_graph_client, tmp_path, capsys):
        groups = [create_mock_group("g-dl", "Only List", group_types=[])]
        mock_graph_client.groups.get = AsyncMock(return_value=create_mock_page(groups))

        report_file = asyncio.run(run_report(
            mock_graph_client, ReportMode.M365, 0, str(tmp_path), show_progress=False))

        assert report_file is None
        assert list(tmp_path.iterdir()) == []
        assert "Nothing to process" in capsys.readouterr().out
        mock_graph_client.groups.by_group_id.assert_not_called()

    def test_interrupted_run_writes_nothing(self, mock_graph_client, tmp_path):
        groups = [create_mock_group("g-1", "First"), create_mock_group("g-2", "Second")]
        mock_graph_client.groups.get = AsyncMock(return_value=create_mock_page(groups))
        setup_member_counts(mock_graph_client, {"g-1": 1, "g-2": KeyboardInterrupt()})

        with pytest.raises(KeyboardInterrupt):
            asyncio.run(run_report(mock_graph_client, ReportMode.DL, 0, str(tmp_path), show_progress=False))

        assert glob.glob(os.path.join(str(tmp_path), "GroupMemberCounts_*")) == []


class TestMain:
    """Tests for the command-line entry point."""

    def base_argv(self, tmp_path):
        return ['--tenant-id', 'tenant-1234-5678', '--client-id', 'client-123',
                '-o', str(tmp_path / "out"), '--no-progress']

    def test_conflicting_modes_rejected(self, clean_env):
        with pytest.raises(SystemExit) as exc_info:
            main(['--dl', '--m365'])
        assert exc_info.value.code == 2

    def test_negative_test_limit_rejected(self, clean_env, tmp_path, monkeypatch):
        monkeypatch.setenv("MS365_CLIENT_SECRET", "secret")
        with patch('group_size_report.get_graph_client') as mock_get_client:
            assert main(self.base_argv(tmp_path) + ['--test-limit', '-1']) == 2
            mock_get_client.assert_not_called()

    def test_missing_credentials(self, clean_env, capsys):
        assert main(['--all']) == 1
        assert "Missing credentials" in capsys.readouterr().out

    def test_generate_config(self, clean_env, capsys):
        assert main(['--generate-config']) == 0
        assert "over_fetch_multiplier" in capsys.readouterr().out

    def test_full_run(self, clean_env, tmp_path, monkeypatch, mock_graph_client):
        monkeypatch.setenv("MS365_CLIENT_SECRET", "secret")
        setup_scenario(mock_graph_client)

        with patch('group_size_report.get_graph_client', return_value=mock_graph_client) as mock_get_client:
            assert main(['--all'] + self.base_argv(tmp_path)) == 0
            mock_get_client.assert_called_once_with('tenant-1234-5678', 'client-123', 'secret')

        reports = glob.glob(str(tmp_path / "out" / "GroupMemberCounts_AllGroups_*.csv"))
        assert len(reports) == 1

    def test_default_mode_is_dl(self, clean_env, tmp_path, monkeypatch, mock_graph_client):
        monkeypatch.setenv("MS365_CLIENT_SECRET", "secret")
        setup_scenario(mock_graph_client)

        with patch('group_size_report.get_graph_client', return_value=mock_graph_client):
            assert main(self.base_argv(tmp_path)) == 0

        assert len(glob.glob(str(tmp_path / "out" / "GroupMemberCounts_DistributionLists_*.csv"))) == 1

    def test_mode_from_environment(self, clean_env, tmp_path, monkeypatch, mock_graph_client):
        monkeypatch.setenv("MS365_CLIENT_SECRET", "secret")
        monkeypatch.setenv("GSR_MODE", "m365")
        setup_scenario(mock_graph_client)

        with patch('group_size_report.get_graph_client', return_value=mock_graph_client):
            assert main(self.base_argv(tmp_path)) == 0

        assert len(glob.glob(str(tmp_path / "out" / "GroupMemberCounts_M365Groups_*.csv"))) == 1

    def test_connection_failure_exit_code(self, clean_env, tmp_path, monkeypatch, mock_graph_client):
        monkeypatch.setenv("MS365_CLIENT_SECRET", "secret")
        mock_graph_client.groups.get = AsyncMock(side_effect=ODataError(code="Authorization_RequestDenied"))

        with patch('group_size_report.get_graph_client', return_value=mock_graph_client):
            assert main(['--all'] + self.base_argv(tmp_path)) == 1

        assert glob.glob(str(tmp_path / "out" / "GroupMemberCounts_*.csv")) == []
        mock_graph_client.groups.by_group_id.assert_not_called()

    def test_non_string_log_level_rejected(self, clean_env, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv("MS365_CLIENT_SECRET", "secret")
        config_path = tmp_path / "gsr-config.yaml"
        config_path.write_text("log_level: 10\n")
        os.chmod(config_path, 0o600)

        with patch('group_size_report.get_graph_client') as mock_get_client:
            assert main(self.base_argv(tmp_path)) == 2
            mock_get_client.assert_not_called()
        assert "log_level" in capsys.readouterr().out

    def test_empty_selection_exit_code(self, clean_env, tmp_path, monkeypatch, mock_graph_client):
        monkeypatch.setenv("MS365_CLIENT_SECRET", "secret")
        mock_graph_client.groups.get = AsyncMock(return_value=create_mock_page([]))

        with patch('group_size_report.get_graph_client', return_value=mock_graph_client):
            assert main(['--m365'] + self.base_argv(tmp_path)) == 0

        assert glob.glob(str(tmp_path / "out" / "GroupMemberCounts_*.csv")) == []
