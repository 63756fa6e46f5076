# ================================================================
# File     : classifier.py
# Purpose  : Derive a group's category and dynamic flag from the
#            raw groupTypes / securityEnabled / mailEnabled fields
# Notes    : Total over every flag combination; first match wins
# ================================================================

from typing import Dict, Iterable

from groupkennel.core.models import (
    DYNAMIC_MEMBERSHIP,
    UNIFIED,
    DerivedClassification,
    GroupCategory,
    GroupRecord,
)


# ================================================================
# Function: fncClassify
# Purpose : Map raw flags to a GroupCategory value
# Notes   : Unified > mail-enabled security > security > distribution
# ================================================================
def fncClassify(group_types: Iterable[str], security_enabled: bool, mail_enabled: bool) -> str:
    gtypes = set(group_types or ())
    if UNIFIED in gtypes:
        return GroupCategory.M365
    if security_enabled and mail_enabled:
        return GroupCategory.MAIL_ENABLED_SECURITY
    if security_enabled:
        return GroupCategory.SECURITY
    if mail_enabled:
        return GroupCategory.DISTRIBUTION
    return GroupCategory.UNKNOWN


def fncIsDynamic(group_types: Iterable[str]) -> bool:
    return DYNAMIC_MEMBERSHIP in set(group_types or ())


def fncClassifyGroup(group: GroupRecord) -> DerivedClassification:
    return DerivedClassification(
        group_id=group.id,
        category=fncClassify(group.group_types, group.security_enabled, group.mail_enabled),
        is_dynamic=fncIsDynamic(group.group_types),
    )


def fncClassifyAll(groups: Iterable[GroupRecord]) -> Dict[str, DerivedClassification]:
    return {g.id: fncClassifyGroup(g) for g in groups}
