"""
Tests for the end-to-end assessment over a fake directory snapshot.

Covers:
- Classification, governance and activity flowing into rows
- Member sign-in sampling refreshing activity
- Member lookup failures marking rows partial
- Parallel mode producing the same output
"""
import pytest
from unittest.mock import Mock
from datetime import datetime, timedelta, timezone
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from groupkennel.core.activity import ACTION_DELETE_EMPTY, ACTION_REVIEW_ARCHIVE, ACTION_REVIEW_MEMBERSHIP
from groupkennel.core.models import (
    ActivitySignal,
    ActivityStatus,
    DirectorySnapshot,
    GroupCategory,
    GroupRecord,
    SignalSource,
)
from groupkennel.core.pipeline import fncRunAssessment

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def iso(days_ago):
    return (NOW - timedelta(days=days_ago)).strftime("%Y-%m-%dT%H:%M:%SZ")


@pytest.fixture
def snapshot():
    """Five groups covering the common governance shapes."""
    groups = [
        GroupRecord(id="m365-active", display_name="Marketing", description="Marketing team",
                    group_types=frozenset(["Unified"]), mail_enabled=True, member_count=12, owner_count=2),
        GroupRecord(id="m365-stale", display_name="Project X", description="Old project",
                    group_types=frozenset(["Unified"]), mail_enabled=True, member_count=4, owner_count=1),
        GroupRecord(id="sec-empty", display_name="Legacy ACL", security_enabled=True,
                    member_count=0, owner_count=0),
        GroupRecord(id="sec-admins", display_name="Tier0 Admins", description="Admins",
                    security_enabled=True, is_assignable_to_role=True, member_count=3, owner_count=1),
        GroupRecord(id="dl-unknown", display_name="All Staff", description="DL",
                    mail_enabled=True, member_count=None, owner_count=None),
    ]
    snap = DirectorySnapshot(groups=groups, fetched_at=NOW)
    snap.role_assignments = {"sec-admins": ["Global Administrator"]}
    snap.signals = [
        ActivitySignal("m365-active", SignalSource.REPORT_EXPORT, NOW - timedelta(days=45)),
        ActivitySignal("m365-stale", SignalSource.REPORT_EXPORT, NOW - timedelta(days=91)),
    ]
    snap.record_error("dl-unknown", "members count unavailable (503)")
    snap.record_error("dl-unknown", "owners count unavailable (503)")
    return snap


def rows_by_id(result):
    return {r.group_id: r for r in result.rows}


class TestRunAssessment:

    def test_rows_for_every_group(self, snapshot):
        result = fncRunAssessment(snapshot, member_sample=False)
        assert [r.group_id for r in result.rows] == [g.id for g in snapshot.groups]
        assert result.summary.total_groups == 5
        assert result.assessed_at == NOW

    def test_group_outcomes(self, snapshot):
        rows = rows_by_id(fncRunAssessment(snapshot, member_sample=False))

        assert rows["m365-active"].activity_status == ActivityStatus.ACTIVE
        assert rows["m365-active"].recommended_action is None

        assert rows["m365-stale"].activity_status == ActivityStatus.INACTIVE
        assert rows["m365-stale"].recommended_action == ACTION_REVIEW_ARCHIVE

        assert rows["sec-empty"].is_empty is True
        assert rows["sec-empty"].is_orphaned is True
        assert rows["sec-empty"].recommended_action == ACTION_DELETE_EMPTY

        assert rows["sec-admins"].is_privileged is True
        assert rows["sec-admins"].assigned_roles == ("Global Administrator",)
        assert rows["sec-admins"].recommended_action == ACTION_REVIEW_MEMBERSHIP

        assert rows["dl-unknown"].category == GroupCategory.DISTRIBUTION
        assert rows["dl-unknown"].is_empty is None
        assert rows["dl-unknown"].is_partial is True

    def test_summary(self, snapshot):
        summary = fncRunAssessment(snapshot, member_sample=False).summary

        assert summary.partial_groups == 1
        assert summary.requiring_action == 4
        assert summary.by_governance_flag["privileged"] == 1
        assert summary.by_activity_status[ActivityStatus.NO_DATA] == 3

    def test_requiring_action_ordering(self, snapshot):
        result = fncRunAssessment(snapshot, member_sample=False)
        assert [r.group_id for r in result.requiring_action][0] == "m365-stale"

    def test_custom_threshold(self, snapshot):
        rows = rows_by_id(fncRunAssessment(snapshot, inactive_days_threshold=30, member_sample=False))
        assert rows["m365-active"].activity_status == ActivityStatus.INACTIVE

    def test_parallel_matches_sequential(self, snapshot):
        seq = fncRunAssessment(snapshot, member_sample=False)
        par = fncRunAssessment(snapshot, member_sample=False, parallel=4)
        assert [r.to_dict() for r in seq.rows] == [r.to_dict() for r in par.rows]


class TestMemberSample:

    def test_recent_member_sign_in_makes_group_active(self, snapshot):
        def fetcher(group_id):
            if group_id == "sec-admins":
                return [{"id": "u1", "signInActivity": {"lastSignInDateTime": iso(3)}}]
            return [{"id": "u2", "signInActivity": {"lastSignInDateTime": iso(400)}}]

        fetcher = Mock(side_effect=fetcher)
        result = fncRunAssessment(snapshot, member_fetcher=fetcher)
        rows = rows_by_id(result)

        assert rows["sec-admins"].activity_status == ActivityStatus.ACTIVE
        assert rows["sec-admins"].last_activity_source == SignalSource.MEMBER_SIGN_IN
        assert rows["sec-admins"].members_checked == 1
        assert rows["sec-admins"].recommended_action is None

        called = {c.args[0] for c in fetcher.call_args_list}
        assert "sec-empty" not in called
        assert "m365-active" not in called
        assert "m365-stale" in called

    def test_cached_member_data_is_not_refetched(self, snapshot):
        snapshot.member_sign_ins["m365-stale"] = []
        fetcher = Mock(return_value=[])
        fncRunAssessment(snapshot, member_fetcher=fetcher)

        assert "m365-stale" not in {c.args[0] for c in fetcher.call_args_list}

    def test_lookup_failure_marks_row_partial(self, snapshot):
        fetcher = Mock(side_effect=RuntimeError("boom"))
        rows = rows_by_id(fncRunAssessment(snapshot, member_fetcher=fetcher))

        assert rows["m365-stale"].is_partial is True
        assert rows["m365-stale"].members_checked is None
        assert rows["m365-stale"].activity_status == ActivityStatus.INACTIVE

    def test_no_fetcher_means_no_member_facts(self, snapshot):
        result = fncRunAssessment(snapshot)
        assert result.member_activity == {}

    def test_sample_cap_respected(self, snapshot):
        fetcher = Mock(return_value=[])
        fncRunAssessment(snapshot, member_fetcher=fetcher, sample_cap=1)
        assert fetcher.call_count == 1
