"""
Tests for the activity analyser.

Covers:
- Threshold boundaries and status values
- Recommended actions per category / emptiness
- Signal extraction from reports, renewals, audits and sign-ins
- Member sign-in sampling and member activity facts
"""
import pytest
from datetime import datetime, timedelta, timezone
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from groupkennel.core.activity import (
    ACTION_DELETE_EMPTY,
    ACTION_REVIEW_ARCHIVE,
    ACTION_REVIEW_MEMBERSHIP,
    MEMBER_SAMPLE_CAP,
    fncAnalyseActivity,
    fncAnalyseActivityAll,
    fncAnalyseMemberActivity,
    fncLatestSignal,
    fncRecommendAction,
    fncSelectMemberSample,
    fncSignalFromMemberSignIns,
    fncSignalsFromAudits,
    fncSignalsFromRenewals,
    fncSignalsFromReportRows,
    fncUserLastSignIn,
)
from groupkennel.core.models import (
    ActivityFacts,
    ActivitySignal,
    ActivityStatus,
    GovernanceFacts,
    GroupCategory,
    GroupRecord,
    SignalSource,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def create_group(group_id="g1", unified=True, member_count=5, renewed_days_ago=None):
    return GroupRecord(
        id=group_id,
        display_name=f"Group {group_id}",
        group_types=frozenset(["Unified"] if unified else []),
        security_enabled=not unified,
        mail_enabled=unified,
        member_count=member_count,
        owner_count=1,
        last_renewed_at=NOW - timedelta(days=renewed_days_ago) if renewed_days_ago is not None else None,
    )


def signal(group_id, days_ago, source=SignalSource.REPORT_EXPORT):
    return ActivitySignal(group_id=group_id, source=source, timestamp=NOW - timedelta(days=days_ago))


def facts(group_id, days, active=False):
    if days is None:
        status = ActivityStatus.NO_DATA
    else:
        status = ActivityStatus.ACTIVE if active else ActivityStatus.INACTIVE
    return ActivityFacts(
        group_id=group_id, last_activity_at=None, last_activity_source=None,
        days_since_activity=days, is_active=active, activity_status=status, recommended_action=None,
    )


def gov(group_id, is_empty):
    return GovernanceFacts(
        group_id=group_id, is_empty=is_empty, is_orphaned=False, is_oversized=False,
        has_no_description=False, is_duplicate_name=False, duplicate_count=1,
        guest_count=None, is_privileged=False,
    )


class TestThresholds:
    """Active/inactive decisions around the threshold."""

    def test_recent_m365_group_is_active(self):
        g = create_group()
        result = fncAnalyseActivity(g, [signal("g1", 45)], 90, NOW)

        assert result.is_active is True
        assert result.activity_status == ActivityStatus.ACTIVE
        assert result.days_since_activity == 45
        assert result.recommended_action is None

    def test_stale_m365_group_is_inactive(self):
        g = create_group()
        result = fncAnalyseActivity(g, [signal("g1", 91)], 90, NOW)

        assert result.is_active is False
        assert result.activity_status == ActivityStatus.INACTIVE
        assert result.days_since_activity == 91
        assert result.recommended_action == ACTION_REVIEW_ARCHIVE

    def test_exactly_threshold_days_is_active(self):
        result = fncAnalyseActivity(create_group(), [signal("g1", 90)], 90, NOW)
        assert result.is_active is True

    def test_partial_days_are_floored(self):
        s = ActivitySignal("g1", SignalSource.REPORT_EXPORT, NOW - timedelta(days=90, hours=23))
        result = fncAnalyseActivity(create_group(), [s], 90, NOW)
        assert result.days_since_activity == 90
        assert result.is_active is True

    def test_no_signals_means_no_data(self):
        result = fncAnalyseActivity(create_group(), [], 90, NOW)

        assert result.is_active is False
        assert result.activity_status == ActivityStatus.NO_DATA
        assert result.days_since_activity is None
        assert result.last_activity_at is None
        assert result.recommended_action == ACTION_REVIEW_ARCHIVE

    def test_latest_signal_wins_and_source_is_reported(self):
        signals = [
            signal("g1", 200, SignalSource.RENEWAL),
            signal("g1", 10, SignalSource.AUDIT_LOG),
            signal("g1", 50, SignalSource.REPORT_EXPORT),
        ]
        result = fncAnalyseActivity(create_group(), signals, 90, NOW)

        assert result.days_since_activity == 10
        assert result.last_activity_source == SignalSource.AUDIT_LOG
        assert result.signal_sources == tuple(sorted(
            [SignalSource.RENEWAL, SignalSource.AUDIT_LOG, SignalSource.REPORT_EXPORT]
        ))

    def test_more_signals_never_move_last_activity_earlier(self):
        signals = [signal("g1", 60)]
        before = fncAnalyseActivity(create_group(), signals, 90, NOW).last_activity_at

        signals.append(signal("g1", 300))
        with_older = fncAnalyseActivity(create_group(), signals, 90, NOW).last_activity_at
        assert with_older == before

        signals.append(signal("g1", 5))
        with_newer = fncAnalyseActivity(create_group(), signals, 90, NOW).last_activity_at
        assert with_newer > before

    def test_other_groups_signals_are_ignored(self):
        result = fncAnalyseActivity(create_group("g1"), [signal("g2", 1)], 90, NOW)
        assert result.activity_status == ActivityStatus.NO_DATA

    @pytest.mark.parametrize("bad", [0, -5, True, "90", 90.0, None])
    def test_invalid_threshold_rejected(self, bad):
        with pytest.raises(ValueError):
            fncAnalyseActivity(create_group(), [], bad, NOW)


class TestRecommendedAction:

    def test_active_groups_need_nothing(self):
        assert fncRecommendAction(GroupCategory.M365, True, True) is None

    @pytest.mark.parametrize("category", GroupCategory.ALL)
    def test_empty_group_without_signal_is_deleted(self, category):
        assert fncRecommendAction(category, False, True) == ACTION_DELETE_EMPTY

    def test_empty_group_with_old_signal_is_reviewed(self):
        assert fncRecommendAction(GroupCategory.SECURITY, False, True, has_signal=True) == ACTION_REVIEW_MEMBERSHIP
        assert fncRecommendAction(GroupCategory.M365, False, True, has_signal=True) == ACTION_REVIEW_ARCHIVE

    def test_empty_privileged_group_with_old_signal_is_deleted(self):
        action = fncRecommendAction(GroupCategory.SECURITY, False, True, has_signal=True, is_privileged=True)
        assert action == ACTION_DELETE_EMPTY

    def test_stale_empty_security_group_with_owners(self):
        g = GroupRecord(id="g1", display_name="Stale ACL", security_enabled=True,
                        member_count=0, owner_count=2)
        old = [ActivitySignal("g1", SignalSource.AUDIT_LOG, NOW - timedelta(days=200))]

        result = fncAnalyseActivity(g, old, 90, NOW)
        assert result.activity_status == ActivityStatus.INACTIVE
        assert result.recommended_action == ACTION_REVIEW_MEMBERSHIP

        escalated = fncAnalyseActivity(
            GroupRecord(id="g1", display_name="Stale ACL", security_enabled=True, is_assignable_to_role=True,
                        member_count=0, owner_count=2),
            old, 90, NOW,
        )
        assert escalated.recommended_action == ACTION_DELETE_EMPTY

    def test_inactive_non_empty_m365(self):
        assert fncRecommendAction(GroupCategory.M365, False, False) == ACTION_REVIEW_ARCHIVE

    @pytest.mark.parametrize("category", [
        GroupCategory.SECURITY, GroupCategory.MAIL_ENABLED_SECURITY,
        GroupCategory.DISTRIBUTION, GroupCategory.UNKNOWN,
    ])
    def test_inactive_non_empty_other(self, category):
        assert fncRecommendAction(category, False, False) == ACTION_REVIEW_MEMBERSHIP

    def test_unknown_emptiness_is_not_treated_as_empty(self):
        assert fncRecommendAction(GroupCategory.SECURITY, False, None) == ACTION_REVIEW_MEMBERSHIP

    def test_empty_security_group_via_analysis(self):
        g = create_group(unified=False, member_count=0)
        result = fncAnalyseActivity(g, [], 90, NOW)
        assert result.recommended_action == ACTION_DELETE_EMPTY

    def test_governance_emptiness_takes_precedence(self):
        g = create_group(member_count=None)
        result = fncAnalyseActivity(g, [], 90, NOW, governance=gov("g1", True))
        assert result.recommended_action == ACTION_DELETE_EMPTY


class TestSignalExtraction:
    """Signals from each upstream source."""

    def test_csv_report_rows(self):
        rows = [
            {"Report Refresh Date": "2024-05-30", "Group Id": "g1", "Last Activity Date": "2024-05-01"},
            {"Report Refresh Date": "2024-05-30", "Group Id": "g2", "Last Activity Date": ""},
            {"Report Refresh Date": "2024-05-30", "Group Id": "", "Last Activity Date": "2024-05-01"},
        ]
        signals = fncSignalsFromReportRows(rows)

        assert len(signals) == 1
        assert signals[0].group_id == "g1"
        assert signals[0].source == SignalSource.REPORT_EXPORT
        assert signals[0].timestamp == datetime(2024, 5, 1, tzinfo=timezone.utc)

    def test_json_report_rows(self):
        rows = [{"reportRefreshDate": "2024-05-30", "groupId": "g1", "lastActivityDate": "2024-04-02"}]
        signals = fncSignalsFromReportRows(rows)
        assert [s.timestamp.date().isoformat() for s in signals] == ["2024-04-02"]

    def test_teams_report_rows(self):
        rows = [{"Team Id": "t1", "Last Activity Date": "2024-05-20"}]
        assert fncSignalsFromReportRows(rows)[0].group_id == "t1"

    def test_unparseable_dates_dropped(self):
        rows = [{"Group Id": "g1", "Last Activity Date": "not a date"}]
        assert fncSignalsFromReportRows(rows) == []

    def test_renewals(self):
        groups = [create_group("a", renewed_days_ago=3), create_group("b")]
        signals = fncSignalsFromRenewals(groups)

        assert [s.group_id for s in signals] == ["a"]
        assert signals[0].source == SignalSource.RENEWAL

    def test_audits_only_target_groups(self):
        entries = [
            {
                "activityDateTime": "2024-05-28T10:00:00Z",
                "targetResources": [
                    {"id": "g1", "type": "Group"},
                    {"id": "u1", "type": "User"},
                ],
            },
            {"activityDateTime": None, "targetResources": [{"id": "g2", "type": "Group"}]},
        ]
        signals = fncSignalsFromAudits(entries)

        assert [(s.group_id, s.source) for s in signals] == [("g1", SignalSource.AUDIT_LOG)]

    def test_user_last_sign_in_takes_latest_kind(self):
        user = {"signInActivity": {
            "lastSignInDateTime": "2024-05-01T00:00:00Z",
            "lastNonInteractiveSignInDateTime": "2024-05-20T00:00:00Z",
        }}
        assert fncUserLastSignIn(user) == datetime(2024, 5, 20, tzinfo=timezone.utc)
        assert fncUserLastSignIn({}) is None

    def test_member_sign_in_signal(self):
        users = [
            {"signInActivity": {"lastSignInDateTime": "2024-05-01T00:00:00Z"}},
            {"signInActivity": {"lastSignInDateTime": "2024-05-10T00:00:00Z"}},
            {"signInActivity": None},
        ]
        sig = fncSignalFromMemberSignIns("g1", users)

        assert sig.source == SignalSource.MEMBER_SIGN_IN
        assert sig.timestamp == datetime(2024, 5, 10, tzinfo=timezone.utc)
        assert fncSignalFromMemberSignIns("g1", [{}]) is None

    def test_latest_signal_empty(self):
        assert fncLatestSignal([]) is None


class TestAnalyseAll:

    def test_signals_routed_to_their_groups(self):
        groups = [create_group("a"), create_group("b")]
        result = fncAnalyseActivityAll(groups, [signal("a", 5), signal("b", 120)], 90, NOW)

        assert result["a"].is_active is True
        assert result["b"].activity_status == ActivityStatus.INACTIVE


class TestMemberSample:
    """Bounded sample of idle groups for member sign-in checks."""

    def test_longest_idle_first_then_no_data(self):
        activity = {
            "a": facts("a", 100),
            "b": facts("b", 300),
            "c": facts("c", None),
            "d": facts("d", 5, active=True),
        }
        assert fncSelectMemberSample(activity) == ["b", "a", "c"]

    def test_empty_groups_skipped(self):
        activity = {"a": facts("a", 100), "b": facts("b", 200)}
        assert fncSelectMemberSample(activity, {"b": gov("b", True)}) == ["a"]

    def test_cap_is_bounded(self):
        activity = {f"g{i:02d}": facts(f"g{i:02d}", 100 + i) for i in range(25)}
        assert len(fncSelectMemberSample(activity, cap=50)) == MEMBER_SAMPLE_CAP
        assert len(fncSelectMemberSample(activity, cap=3)) == 3
        assert fncSelectMemberSample(activity, cap=0) == []

    def test_ties_broken_by_id(self):
        activity = {"z": facts("z", 100), "a": facts("a", 100)}
        assert fncSelectMemberSample(activity) == ["a", "z"]


class TestMemberActivity:

    def test_counts_and_percent(self):
        users = [
            {"signInActivity": {"lastSignInDateTime": (NOW - timedelta(days=10)).isoformat()}},
            {"signInActivity": {"lastSignInDateTime": (NOW - timedelta(days=200)).isoformat()}},
            {"signInActivity": {}},
            {},
        ]
        result = fncAnalyseMemberActivity("g1", users, 90, NOW)

        assert result.members_checked == 4
        assert result.active_members == 1
        assert result.inactive_members == 1
        assert result.never_signed_in == 2
        assert result.percent_active == 25.0
        assert result.last_member_sign_in == NOW - timedelta(days=10)

    def test_no_members(self):
        result = fncAnalyseMemberActivity("g1", [], 90, NOW)
        assert result.members_checked == 0
        assert result.percent_active == 0
