# ================================================================
# File     : activity.py
# Purpose  : Per-group activity facts from heterogeneous signals
#            (usage reports, renewals, audit log, member sign-ins)
# Notes    : Any signal source may be missing. That is expected and
#            simply yields fewer signals, never an error.
# ================================================================

from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from groupkennel.core.classifier import fncClassifyGroup
from groupkennel.core.models import (
    ActivityFacts,
    ActivitySignal,
    ActivityStatus,
    DerivedClassification,
    GovernanceFacts,
    GroupCategory,
    GroupRecord,
    MemberActivityFacts,
    SignalSource,
)
from groupkennel.core.utils import fncFloorDays, fncParseDateTime, fncPercent, fncPrintMessage

DEFAULT_INACTIVE_DAYS = 90

# Member sign-in lookups cost one Graph call per member; cap the number
# of groups examined so a large inactive set cannot fan out unbounded.
MEMBER_SAMPLE_CAP = 10

ACTION_DELETE_EMPTY = "Empty group - Delete"
ACTION_REVIEW_ARCHIVE = "Review for archival or deletion"
ACTION_REVIEW_MEMBERSHIP = "Review membership and necessity"

REPORT_GROUP_ID_KEYS = ("Group Id", "groupId", "Team Id", "teamId")
REPORT_IGNORED_DATE_KEYS = {"reportrefreshdate", "createddate", "createddatetime"}


def _norm_key(key: str) -> str:
    return "".join(ch for ch in str(key).lower() if ch.isalnum())


# ----------------------- signal extraction -----------------------

def fncSignalsFromReportRows(rows: Iterable[Dict[str, Any]],
                             source: str = SignalSource.REPORT_EXPORT) -> List[ActivitySignal]:
    """
    Turn usage-report rows (CSV or beta JSON) into signals.

    Every column whose name mentions a date is a candidate, except the
    report refresh date. Blank or unparseable values are skipped.
    """
    out: List[ActivitySignal] = []
    for row in rows:
        gid = ""
        for k in REPORT_GROUP_ID_KEYS:
            if row.get(k):
                gid = str(row[k]).strip()
                break
        if not gid:
            continue
        for key, val in row.items():
            nk = _norm_key(key)
            if "date" not in nk or nk in REPORT_IGNORED_DATE_KEYS:
                continue
            if val in (None, ""):
                continue
            ts = fncParseDateTime(val)
            if ts is None:
                fncPrintMessage(f"Dropping unparseable '{key}' value {val!r} for group {gid}", "debug")
                continue
            out.append(ActivitySignal(group_id=gid, source=source, timestamp=ts))
    return out


def fncSignalsFromRenewals(groups: Iterable[GroupRecord]) -> List[ActivitySignal]:
    return [
        ActivitySignal(group_id=g.id, source=SignalSource.RENEWAL, timestamp=g.last_renewed_at)
        for g in groups if g.last_renewed_at
    ]


def fncSignalsFromAudits(entries: Iterable[Dict[str, Any]]) -> List[ActivitySignal]:
    """Directory audit entries → one signal per targeted group."""
    out: List[ActivitySignal] = []
    for e in entries:
        ts = fncParseDateTime(e.get("activityDateTime"))
        if ts is None:
            continue
        for t in e.get("targetResources") or []:
            if (t.get("type") or "").lower() != "group" or not t.get("id"):
                continue
            out.append(ActivitySignal(group_id=t["id"], source=SignalSource.AUDIT_LOG, timestamp=ts))
    return out


def fncUserLastSignIn(user: Dict[str, Any]) -> Optional[datetime]:
    sia = user.get("signInActivity") or {}
    stamps = [
        fncParseDateTime(sia.get("lastSignInDateTime")),
        fncParseDateTime(sia.get("lastNonInteractiveSignInDateTime")),
    ]
    stamps = [s for s in stamps if s]
    return max(stamps) if stamps else None


def fncSignalFromMemberSignIns(group_id: str, users: Iterable[Dict[str, Any]]) -> Optional[ActivitySignal]:
    stamps = [s for s in (fncUserLastSignIn(u) for u in users) if s]
    if not stamps:
        return None
    return ActivitySignal(group_id=group_id, source=SignalSource.MEMBER_SIGN_IN, timestamp=max(stamps))


# ----------------------- analysis -------------------------------

def fncLatestSignal(signals: Iterable[ActivitySignal]) -> Optional[ActivitySignal]:
    latest = None
    for s in signals:
        if latest is None or s.timestamp > latest.timestamp:
            latest = s
    return latest


# ================================================================
# Function: fncRecommendAction
# Purpose : Next step for a group that is not active
# Notes   : Empty groups go straight to deletion only when nothing
#           has ever been seen for them, or when they are privileged.
#           An empty group with (old) activity is reviewed by category.
# ================================================================
def fncRecommendAction(category: str, is_active: bool, is_empty: Optional[bool],
                       has_signal: bool = False, is_privileged: bool = False) -> Optional[str]:
    if is_active:
        return None
    if is_empty and (not has_signal or is_privileged):
        return ACTION_DELETE_EMPTY
    if category == GroupCategory.M365:
        return ACTION_REVIEW_ARCHIVE
    return ACTION_REVIEW_MEMBERSHIP


def _validate_threshold(threshold: int) -> int:
    if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold <= 0:
        raise ValueError(f"inactive_days_threshold must be a positive integer, got {threshold!r}")
    return threshold


# ================================================================
# Function: fncAnalyseActivity
# Purpose : Build ActivityFacts for one group
# Notes   : No signal at all ⇒ inactive with status NoActivityData,
#           kept distinct from "checked and found old" (Inactive).
# ================================================================
def fncAnalyseActivity(
    group: GroupRecord,
    signals: Iterable[ActivitySignal],
    inactive_days_threshold: int,
    now: datetime,
    classification: Optional[DerivedClassification] = None,
    governance: Optional[GovernanceFacts] = None,
) -> ActivityFacts:
    threshold = _validate_threshold(inactive_days_threshold)
    own = [s for s in signals if s.group_id == group.id]
    latest = fncLatestSignal(own)

    if latest is None:
        days = None
        is_active = False
        status = ActivityStatus.NO_DATA
    else:
        days = fncFloorDays(now, latest.timestamp)
        is_active = days <= threshold
        status = ActivityStatus.ACTIVE if is_active else ActivityStatus.INACTIVE

    category = (classification or fncClassifyGroup(group)).category
    if governance is not None:
        is_empty = governance.is_empty
        is_privileged = governance.is_privileged
    else:
        is_empty = None if group.member_count is None else group.member_count == 0
        is_privileged = bool(group.is_assignable_to_role)

    return ActivityFacts(
        group_id=group.id,
        last_activity_at=latest.timestamp if latest else None,
        last_activity_source=latest.source if latest else None,
        days_since_activity=days,
        is_active=is_active,
        activity_status=status,
        recommended_action=fncRecommendAction(
            category, is_active, is_empty, has_signal=latest is not None, is_privileged=is_privileged,
        ),
        signal_sources=tuple(sorted({s.source for s in own})),
    )


def fncAnalyseActivityAll(
    groups: Iterable[GroupRecord],
    signals: Iterable[ActivitySignal],
    inactive_days_threshold: int,
    now: datetime,
    classifications: Optional[Mapping[str, DerivedClassification]] = None,
    governance: Optional[Mapping[str, GovernanceFacts]] = None,
) -> Dict[str, ActivityFacts]:
    by_group: Dict[str, List[ActivitySignal]] = {}
    for s in signals:
        by_group.setdefault(s.group_id, []).append(s)
    classifications = classifications or {}
    governance = governance or {}
    return {
        g.id: fncAnalyseActivity(
            g, by_group.get(g.id, []), inactive_days_threshold, now,
            classification=classifications.get(g.id),
            governance=governance.get(g.id),
        )
        for g in groups
    }


# ----------------------- member sub-analysis ---------------------

def _sample_key(f: ActivityFacts) -> Tuple[int, int, str]:
    if f.days_since_activity is None:
        return (1, 0, f.group_id)
    return (0, -f.days_since_activity, f.group_id)


def fncSelectMemberSample(
    activity: Mapping[str, ActivityFacts],
    governance: Optional[Mapping[str, GovernanceFacts]] = None,
    cap: int = MEMBER_SAMPLE_CAP,
) -> List[str]:
    """
    Pick at most `cap` non-active group ids for member sign-in checks.
    Longest-idle first, groups with no data after, ties by id; known-empty
    groups are skipped as there is nobody to check.
    """
    governance = governance or {}
    cap = max(0, min(int(cap), MEMBER_SAMPLE_CAP))
    candidates = [
        f for f in activity.values()
        if not f.is_active and not (governance.get(f.group_id) and governance[f.group_id].is_empty)
    ]
    candidates.sort(key=_sample_key)
    return [f.group_id for f in candidates[:cap]]


def fncAnalyseMemberActivity(group_id: str, users: Iterable[Dict[str, Any]],
                             inactive_days_threshold: int, now: datetime) -> MemberActivityFacts:
    threshold = _validate_threshold(inactive_days_threshold)
    users = list(users)
    active = inactive = never = 0
    latest: Optional[datetime] = None
    for u in users:
        last = fncUserLastSignIn(u)
        if last is None:
            never += 1
            continue
        if latest is None or last > latest:
            latest = last
        if fncFloorDays(now, last) <= threshold:
            active += 1
        else:
            inactive += 1

    return MemberActivityFacts(
        group_id=group_id,
        members_checked=len(users),
        active_members=active,
        inactive_members=inactive,
        never_signed_in=never,
        percent_active=fncPercent(active, len(users)),
        last_member_sign_in=latest,
    )
