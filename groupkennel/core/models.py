"""
Data models for the GroupKennel assessment pipeline.

GroupRecord is the root entity. Every other record is a pure derivation
keyed by group id and recomputed on each run.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from groupkennel.core.utils import fncIsoOrBlank, fncParseDateTime


class GroupCategory:
    M365 = "M365"
    SECURITY = "Security"
    MAIL_ENABLED_SECURITY = "MailEnabledSecurity"
    DISTRIBUTION = "Distribution"
    UNKNOWN = "Unknown"

    ALL = (M365, SECURITY, MAIL_ENABLED_SECURITY, DISTRIBUTION, UNKNOWN)


class SignalSource:
    REPORT_EXPORT = "report-export"
    RENEWAL = "renewal"
    AUDIT_LOG = "audit-log"
    MEMBER_SIGN_IN = "member-sign-in"

    ALL = (REPORT_EXPORT, RENEWAL, AUDIT_LOG, MEMBER_SIGN_IN)


class ActivityStatus:
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    NO_DATA = "NoActivityData"

    ALL = (ACTIVE, INACTIVE, NO_DATA)


UNIFIED = "Unified"
DYNAMIC_MEMBERSHIP = "DynamicMembership"


@dataclass(frozen=True)
class GroupRecord:
    """One directory group as observed at fetch time."""
    id: str
    display_name: str = ""
    description: Optional[str] = None
    group_types: FrozenSet[str] = frozenset()
    security_enabled: bool = False
    mail_enabled: bool = False
    is_assignable_to_role: bool = False
    created_at: Optional[datetime] = None
    last_renewed_at: Optional[datetime] = None
    on_prem_synced: bool = False
    member_count: Optional[int] = None  # None = count could not be fetched
    owner_count: Optional[int] = None
    visibility: Optional[str] = None
    membership_rule: Optional[str] = None

    @classmethod
    def from_graph(cls, raw: Dict[str, Any], member_count: Optional[int] = None,
                   owner_count: Optional[int] = None) -> "GroupRecord":
        return cls(
            id=raw["id"],
            display_name=raw.get("displayName") or "",
            description=raw.get("description"),
            group_types=frozenset(raw.get("groupTypes") or []),
            security_enabled=bool(raw.get("securityEnabled")),
            mail_enabled=bool(raw.get("mailEnabled")),
            is_assignable_to_role=bool(raw.get("isAssignableToRole")),
            created_at=fncParseDateTime(raw.get("createdDateTime")),
            last_renewed_at=fncParseDateTime(raw.get("renewedDateTime")),
            on_prem_synced=bool(raw.get("onPremisesSyncEnabled")),
            member_count=member_count,
            owner_count=owner_count,
            visibility=raw.get("visibility"),
            membership_rule=raw.get("membershipRule"),
        )


@dataclass(frozen=True)
class DerivedClassification:
    group_id: str
    category: str
    is_dynamic: bool


@dataclass(frozen=True)
class GovernanceFacts:
    """Risk flags for one group. Count-derived flags are None when the count is unknown."""
    group_id: str
    is_empty: Optional[bool]
    is_orphaned: Optional[bool]
    is_oversized: Optional[bool]
    has_no_description: bool
    is_duplicate_name: bool
    duplicate_count: int
    guest_count: Optional[int]
    is_privileged: bool
    assigned_roles: Tuple[str, ...] = ()
    privilege_source: str = ""


@dataclass(frozen=True)
class ActivitySignal:
    group_id: str
    source: str
    timestamp: datetime


@dataclass(frozen=True)
class ActivityFacts:
    group_id: str
    last_activity_at: Optional[datetime]
    last_activity_source: Optional[str]
    days_since_activity: Optional[int]
    is_active: bool
    activity_status: str
    recommended_action: Optional[str]
    signal_sources: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MemberActivityFacts:
    group_id: str
    members_checked: int
    active_members: int
    inactive_members: int
    never_signed_in: int
    percent_active: float
    last_member_sign_in: Optional[datetime] = None


@dataclass
class DirectorySnapshot:
    """Everything the Directory Fetch Adapter hands to the pipeline."""
    groups: List[GroupRecord] = field(default_factory=list)
    role_assignments: Dict[str, List[str]] = field(default_factory=dict)
    guest_counts: Dict[str, Optional[int]] = field(default_factory=dict)
    signals: List[ActivitySignal] = field(default_factory=list)
    member_sign_ins: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    fetch_errors: Dict[str, List[str]] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    fetched_at: Optional[datetime] = None

    def record_error(self, group_id: str, message: str) -> None:
        self.fetch_errors.setdefault(group_id, []).append(message)


@dataclass
class SummaryRow:
    """One flat row per group joining record, classification and facts."""
    group_id: str
    display_name: str
    category: str
    is_dynamic: bool
    is_assignable_to_role: bool
    on_prem_synced: bool
    created_at: Optional[datetime]
    member_count: Optional[int]
    owner_count: Optional[int]
    guest_count: Optional[int]
    is_empty: Optional[bool]
    is_orphaned: Optional[bool]
    is_oversized: Optional[bool]
    has_no_description: bool
    is_duplicate_name: bool
    duplicate_count: int
    is_privileged: bool
    privilege_source: str
    assigned_roles: Tuple[str, ...]
    last_activity_at: Optional[datetime]
    last_activity_source: Optional[str]
    days_since_activity: Optional[int]
    is_active: bool
    activity_status: str
    recommended_action: Optional[str]
    members_checked: Optional[int] = None
    active_members: Optional[int] = None
    percent_members_active: Optional[float] = None
    fetch_errors: Tuple[str, ...] = ()

    @property
    def is_partial(self) -> bool:
        return bool(self.fetch_errors)

    def to_dict(self) -> Dict[str, Any]:
        """Flat, export-friendly row (camelCase keys, ISO timestamps, None kept as None)."""
        return {
            "Id": self.group_id,
            "DisplayName": self.display_name,
            "Category": self.category,
            "Dynamic": self.is_dynamic,
            "RoleAssignable": self.is_assignable_to_role,
            "OnPremSynced": self.on_prem_synced,
            "Created": fncIsoOrBlank(self.created_at) or None,
            "Members": self.member_count,
            "Owners": self.owner_count,
            "Guests": self.guest_count,
            "Empty": self.is_empty,
            "Orphaned": self.is_orphaned,
            "Oversized": self.is_oversized,
            "NoDescription": self.has_no_description,
            "DuplicateName": self.is_duplicate_name,
            "DuplicateCount": self.duplicate_count,
            "Privileged": self.is_privileged,
            "PrivilegeSource": self.privilege_source or None,
            "AssignedRoles": ", ".join(self.assigned_roles) or None,
            "LastActivity": fncIsoOrBlank(self.last_activity_at) or None,
            "LastActivitySource": self.last_activity_source,
            "DaysSinceActivity": self.days_since_activity,
            "Active": self.is_active,
            "ActivityStatus": self.activity_status,
            "RecommendedAction": self.recommended_action,
            "MembersChecked": self.members_checked,
            "ActiveMembers": self.active_members,
            "PercentMembersActive": self.percent_members_active,
            "Partial": self.is_partial,
            "FetchErrors": "; ".join(self.fetch_errors) or None,
        }


@dataclass
class AssessmentSummary:
    """Tenant-wide aggregate folded over all summary rows."""
    total_groups: int = 0
    by_category: Dict[str, int] = field(default_factory=dict)
    by_governance_flag: Dict[str, int] = field(default_factory=dict)
    by_activity_status: Dict[str, int] = field(default_factory=dict)
    by_category_percent: Dict[str, float] = field(default_factory=dict)
    by_governance_flag_percent: Dict[str, float] = field(default_factory=dict)
    by_activity_status_percent: Dict[str, float] = field(default_factory=dict)
    partial_groups: int = 0
    requiring_action: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
