# ================================================================
# File     : pipeline.py
# Purpose  : Classify → analyse (governance, activity) → aggregate
#            over one DirectorySnapshot
# Notes    : Rows are only built once every group's facts exist, so an
#            interrupted run emits nothing rather than half a table.
# ================================================================

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from groupkennel.core.activity import (
    DEFAULT_INACTIVE_DAYS,
    MEMBER_SAMPLE_CAP,
    fncAnalyseActivity,
    fncAnalyseMemberActivity,
    fncSelectMemberSample,
    fncSignalFromMemberSignIns,
)
from groupkennel.core.aggregator import fncAggregate, fncRowsRequiringAction
from groupkennel.core.classifier import fncClassifyAll
from groupkennel.core.governance import fncAnalyseGovernance, fncDuplicateNameCounts
from groupkennel.core.models import (
    ActivityFacts,
    AssessmentSummary,
    DerivedClassification,
    DirectorySnapshot,
    GovernanceFacts,
    MemberActivityFacts,
    SummaryRow,
)
from groupkennel.core.utils import fncPrintMessage, fncUtcNow

MemberFetcher = Callable[[str], List[Dict[str, Any]]]


@dataclass
class AssessmentResult:
    rows: List[SummaryRow]
    summary: AssessmentSummary
    classifications: Dict[str, DerivedClassification] = field(default_factory=dict)
    governance: Dict[str, GovernanceFacts] = field(default_factory=dict)
    activity: Dict[str, ActivityFacts] = field(default_factory=dict)
    member_activity: Dict[str, MemberActivityFacts] = field(default_factory=dict)
    inactive_days_threshold: int = DEFAULT_INACTIVE_DAYS
    assessed_at: Optional[datetime] = None

    @property
    def requiring_action(self) -> List[SummaryRow]:
        return fncRowsRequiringAction(self.rows)


def _map_groups(fn, items, parallel: int) -> list:
    items = list(items)
    if parallel <= 1 or len(items) < 2:
        return [fn(i) for i in items]
    with ThreadPoolExecutor(max_workers=parallel) as executor:
        return list(executor.map(fn, items))


def _member_users(snapshot: DirectorySnapshot, group_id: str,
                  member_fetcher: Optional[MemberFetcher]) -> Optional[List[Dict[str, Any]]]:
    if group_id in snapshot.member_sign_ins:
        return snapshot.member_sign_ins[group_id]
    if member_fetcher is None:
        return None
    try:
        users = member_fetcher(group_id)
    except Exception as ex:
        fncPrintMessage(f"Member sign-in lookup failed for group {group_id}: {ex}", "warn")
        snapshot.record_error(group_id, f"member sign-in lookup failed: {ex}")
        return None
    snapshot.member_sign_ins[group_id] = users
    return users


# ================================================================
# Function: fncRunAssessment
# Purpose : Run stages 2-5 over a fetched snapshot
# Notes   : member_fetcher is only called for the bounded sample
#           picked by fncSelectMemberSample.
# ================================================================
def fncRunAssessment(
    snapshot: DirectorySnapshot,
    inactive_days_threshold: int = DEFAULT_INACTIVE_DAYS,
    now: Optional[datetime] = None,
    parallel: int = 1,
    member_sample: bool = True,
    member_fetcher: Optional[MemberFetcher] = None,
    sample_cap: int = MEMBER_SAMPLE_CAP,
) -> AssessmentResult:
    now = now or snapshot.fetched_at or fncUtcNow()
    groups = snapshot.groups
    fncPrintMessage(f"Assessing {len(groups)} group(s) (inactive after {inactive_days_threshold} days)", "info")

    classifications = fncClassifyAll(groups)

    dup_counts = fncDuplicateNameCounts(groups)
    gov_list = _map_groups(
        lambda g: fncAnalyseGovernance(
            g, groups,
            role_assignments=snapshot.role_assignments,
            guest_count=snapshot.guest_counts.get(g.id),
            duplicate_counts=dup_counts,
        ),
        groups, parallel,
    )
    governance = {f.group_id: f for f in gov_list}

    signals_by_group: Dict[str, list] = {}
    for s in snapshot.signals:
        signals_by_group.setdefault(s.group_id, []).append(s)

    def _activity(g):
        return fncAnalyseActivity(
            g, signals_by_group.get(g.id, []), inactive_days_threshold, now,
            classification=classifications[g.id],
            governance=governance[g.id],
        )

    act_list = _map_groups(_activity, groups, parallel)
    activity = {f.group_id: f for f in act_list}

    member_activity: Dict[str, MemberActivityFacts] = {}
    if member_sample:
        sample = fncSelectMemberSample(activity, governance, cap=sample_cap)
        if sample:
            fncPrintMessage(f"Checking member sign-ins for {len(sample)} sampled group(s)", "info")
        by_id = {g.id: g for g in groups}
        for gid in sample:
            users = _member_users(snapshot, gid, member_fetcher)
            if users is None:
                continue
            member_activity[gid] = fncAnalyseMemberActivity(gid, users, inactive_days_threshold, now)
            sig = fncSignalFromMemberSignIns(gid, users)
            if sig is not None:
                signals_by_group.setdefault(gid, []).append(sig)
                activity[gid] = _activity(by_id[gid])

    rows, summary = fncAggregate(
        groups, classifications, governance, activity,
        member_activity=member_activity,
        fetch_errors=snapshot.fetch_errors,
    )
    fncPrintMessage(
        f"Assessment complete: {summary.total_groups} group(s), "
        f"{summary.requiring_action} requiring action, {summary.partial_groups} partial",
        "success",
    )
    return AssessmentResult(
        rows=rows,
        summary=summary,
        classifications=classifications,
        governance=governance,
        activity=activity,
        member_activity=member_activity,
        inactive_days_threshold=inactive_days_threshold,
        assessed_at=now,
    )
