# ================================================================
# File     : governance.py
# Purpose  : Per-group risk facts: empty, orphaned, oversized,
#            undocumented, duplicate name, guests, privileged
# Notes    : Duplicate detection needs the whole snapshot, so it is
#            computed once by fncDuplicateNameCounts and shared.
# ================================================================

from collections import Counter
from typing import Any, Dict, Iterable, List, Mapping, Optional

from groupkennel.core.models import GovernanceFacts, GroupRecord

# Fixed policy constant, not configurable
OVERSIZED_MEMBER_THRESHOLD = 1000

PRIV_ROLE_ASSIGNMENT = "RoleAssignment"
PRIV_ROLE_ASSIGNABLE = "RoleAssignable"


def _name_key(display_name: Optional[str]) -> str:
    return (display_name or "").casefold()


# ================================================================
# Function: fncDuplicateNameCounts
# Purpose : Partition the snapshot by display name
# Notes   : Returns {group_id: size of its name partition}. Names are
#           compared case-insensitively, as Entra does for lookups.
# ================================================================
def fncDuplicateNameCounts(groups: Iterable[GroupRecord]) -> Dict[str, int]:
    groups = list(groups)
    sizes = Counter(_name_key(g.display_name) for g in groups)
    return {g.id: sizes[_name_key(g.display_name)] for g in groups}


# ================================================================
# Function: fncCountGuests
# Purpose : Count members whose userType is Guest
# Notes   : Members are raw Graph directory objects
# ================================================================
def fncCountGuests(members: Iterable[Dict[str, Any]]) -> int:
    return sum(1 for m in members if (m.get("userType") or "").lower() == "guest")


def fncPrivilegeSource(assigned_roles: Iterable[str], is_assignable_to_role: bool) -> str:
    parts = []
    if list(assigned_roles):
        parts.append(PRIV_ROLE_ASSIGNMENT)
    if is_assignable_to_role:
        parts.append(PRIV_ROLE_ASSIGNABLE)
    return "+".join(parts)


def _has_no_description(description: Optional[str]) -> bool:
    return not (description or "").strip()


# ================================================================
# Function: fncAnalyseGovernance
# Purpose : Build GovernanceFacts for a single group
# Notes   : Pass duplicate_counts when analysing many groups so the
#           partition is not rebuilt per call.
# ================================================================
def fncAnalyseGovernance(
    group: GroupRecord,
    all_groups: Iterable[GroupRecord],
    role_assignments: Optional[Mapping[str, List[str]]] = None,
    guest_count: Optional[int] = None,
    duplicate_counts: Optional[Mapping[str, int]] = None,
) -> GovernanceFacts:
    if duplicate_counts is None:
        duplicate_counts = fncDuplicateNameCounts(all_groups)
    dup = duplicate_counts.get(group.id, 1)

    roles = tuple(sorted(set((role_assignments or {}).get(group.id) or [])))
    members = group.member_count
    owners = group.owner_count

    return GovernanceFacts(
        group_id=group.id,
        is_empty=None if members is None else members == 0,
        is_orphaned=None if owners is None else owners == 0,
        is_oversized=None if members is None else members > OVERSIZED_MEMBER_THRESHOLD,
        has_no_description=_has_no_description(group.description),
        is_duplicate_name=dup > 1,
        duplicate_count=dup,
        guest_count=guest_count,
        is_privileged=bool(roles) or group.is_assignable_to_role,
        assigned_roles=roles,
        privilege_source=fncPrivilegeSource(roles, group.is_assignable_to_role),
    )


def fncAnalyseGovernanceAll(
    groups: Iterable[GroupRecord],
    role_assignments: Optional[Mapping[str, List[str]]] = None,
    guest_counts: Optional[Mapping[str, Optional[int]]] = None,
) -> Dict[str, GovernanceFacts]:
    groups = list(groups)
    dup_counts = fncDuplicateNameCounts(groups)
    guest_counts = guest_counts or {}
    return {
        g.id: fncAnalyseGovernance(
            g, groups,
            role_assignments=role_assignments,
            guest_count=guest_counts.get(g.id),
            duplicate_counts=dup_counts,
        )
        for g in groups
    }
