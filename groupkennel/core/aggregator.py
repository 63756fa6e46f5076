# ================================================================
# File     : aggregator.py
# Purpose  : Join classification + governance + activity facts into
#            one row per group and fold them into tenant statistics
# Notes    : Unknown values stay None. Only is_active defaults to
#            False, because "no activity data" means inactive.
# ================================================================

from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from groupkennel.core.classifier import fncClassifyGroup
from groupkennel.core.models import (
    ActivityFacts,
    ActivityStatus,
    AssessmentSummary,
    DerivedClassification,
    GovernanceFacts,
    GroupCategory,
    GroupRecord,
    MemberActivityFacts,
    SummaryRow,
)
from groupkennel.core.utils import fncPercent

GOVERNANCE_FLAGS = (
    "empty",
    "orphaned",
    "oversized",
    "no_description",
    "duplicate_name",
    "with_guests",
    "privileged",
    "role_assignable",
    "dynamic",
    "on_prem_synced",
)


def _build_row(
    g: GroupRecord,
    cls: DerivedClassification,
    gov: Optional[GovernanceFacts],
    act: Optional[ActivityFacts],
    mem: Optional[MemberActivityFacts],
    errors: Iterable[str],
) -> SummaryRow:
    errors = list(errors)
    if gov is None:
        errors.append("governance facts unavailable")
    if act is None:
        errors.append("activity facts unavailable")
    return SummaryRow(
        group_id=g.id,
        display_name=g.display_name,
        category=cls.category,
        is_dynamic=cls.is_dynamic,
        is_assignable_to_role=g.is_assignable_to_role,
        on_prem_synced=g.on_prem_synced,
        created_at=g.created_at,
        member_count=g.member_count,
        owner_count=g.owner_count,
        guest_count=gov.guest_count if gov else None,
        is_empty=gov.is_empty if gov else None,
        is_orphaned=gov.is_orphaned if gov else None,
        is_oversized=gov.is_oversized if gov else None,
        has_no_description=gov.has_no_description if gov else False,
        is_duplicate_name=gov.is_duplicate_name if gov else False,
        duplicate_count=gov.duplicate_count if gov else 1,
        is_privileged=gov.is_privileged if gov else g.is_assignable_to_role,
        privilege_source=gov.privilege_source if gov else "",
        assigned_roles=gov.assigned_roles if gov else (),
        last_activity_at=act.last_activity_at if act else None,
        last_activity_source=act.last_activity_source if act else None,
        days_since_activity=act.days_since_activity if act else None,
        is_active=act.is_active if act else False,
        activity_status=act.activity_status if act else ActivityStatus.NO_DATA,
        recommended_action=act.recommended_action if act else None,
        members_checked=mem.members_checked if mem else None,
        active_members=mem.active_members if mem else None,
        percent_members_active=mem.percent_active if mem else None,
        fetch_errors=tuple(errors),
    )


# ================================================================
# Function: fncBuildSummaryRows
# Purpose : One SummaryRow per group; never drops a group
# ================================================================
def fncBuildSummaryRows(
    groups: Iterable[GroupRecord],
    classifications: Mapping[str, DerivedClassification],
    governance: Mapping[str, GovernanceFacts],
    activity: Mapping[str, ActivityFacts],
    member_activity: Optional[Mapping[str, MemberActivityFacts]] = None,
    fetch_errors: Optional[Mapping[str, List[str]]] = None,
) -> List[SummaryRow]:
    member_activity = member_activity or {}
    fetch_errors = fetch_errors or {}
    rows = []
    for g in groups:
        cls = classifications.get(g.id)
        if cls is None:
            cls = fncClassifyGroup(g)
        rows.append(_build_row(
            g, cls,
            governance.get(g.id),
            activity.get(g.id),
            member_activity.get(g.id),
            fetch_errors.get(g.id) or [],
        ))
    return rows


def _flags_for(row: SummaryRow) -> Dict[str, bool]:
    return {
        "empty": row.is_empty is True,
        "orphaned": row.is_orphaned is True,
        "oversized": row.is_oversized is True,
        "no_description": row.has_no_description,
        "duplicate_name": row.is_duplicate_name,
        "with_guests": bool(row.guest_count),
        "privileged": row.is_privileged,
        "role_assignable": row.is_assignable_to_role,
        "dynamic": row.is_dynamic,
        "on_prem_synced": row.on_prem_synced,
    }


# ================================================================
# Function: fncBuildTenantStats
# Purpose : Single pass over rows → AssessmentSummary
# ================================================================
def fncBuildTenantStats(rows: Iterable[SummaryRow]) -> AssessmentSummary:
    by_category = {c: 0 for c in GroupCategory.ALL}
    by_flag = {f: 0 for f in GOVERNANCE_FLAGS}
    by_status = {s: 0 for s in ActivityStatus.ALL}
    total = partial = action = 0

    for row in rows:
        total += 1
        by_category[row.category] = by_category.get(row.category, 0) + 1
        by_status[row.activity_status] = by_status.get(row.activity_status, 0) + 1
        for flag, hit in _flags_for(row).items():
            if hit:
                by_flag[flag] += 1
        if row.is_partial:
            partial += 1
        if row.recommended_action:
            action += 1

    return AssessmentSummary(
        total_groups=total,
        by_category=by_category,
        by_governance_flag=by_flag,
        by_activity_status=by_status,
        by_category_percent={k: fncPercent(v, total) for k, v in by_category.items()},
        by_governance_flag_percent={k: fncPercent(v, total) for k, v in by_flag.items()},
        by_activity_status_percent={k: fncPercent(v, total) for k, v in by_status.items()},
        partial_groups=partial,
        requiring_action=action,
    )


# ================================================================
# Function: fncRowsRequiringAction
# Purpose : Rows with a recommended action, longest idle first
# Notes   : Unknown days since activity sort last
# ================================================================
def fncRowsRequiringAction(rows: Iterable[SummaryRow]) -> List[SummaryRow]:
    flagged = [r for r in rows if r.recommended_action]
    flagged.sort(key=lambda r: (
        r.days_since_activity is None,
        -(r.days_since_activity or 0),
        r.display_name.casefold(),
        r.group_id,
    ))
    return flagged


def fncAggregate(
    groups: Iterable[GroupRecord],
    classifications: Mapping[str, DerivedClassification],
    governance: Mapping[str, GovernanceFacts],
    activity: Mapping[str, ActivityFacts],
    member_activity: Optional[Mapping[str, MemberActivityFacts]] = None,
    fetch_errors: Optional[Mapping[str, List[str]]] = None,
) -> Tuple[List[SummaryRow], AssessmentSummary]:
    rows = fncBuildSummaryRows(groups, classifications, governance, activity,
                               member_activity=member_activity, fetch_errors=fetch_errors)
    return rows, fncBuildTenantStats(rows)
