# ================================================================
# File     : modules/entra/privileged_groups.py
# Purpose  : Groups holding directory roles or able to hold them
# Notes    : privilege source shows which criterion matched
#            (RoleAssignment, RoleAssignable or both)
# ================================================================

from groupkennel.core.governance import PRIV_ROLE_ASSIGNABLE, PRIV_ROLE_ASSIGNMENT
from groupkennel.core.utils import fncPrintMessage, fncToTable
from groupkennel.modules.entra._assessment import fncGetAssessment, fncModuleData, fncRowDicts

REQUIRED_PERMS = ["Group.Read.All", "RoleManagement.Read.Directory"]

PRIVILEGED_COLUMNS = [
    "Id", "DisplayName", "Category", "PrivilegeSource", "AssignedRoles", "RoleAssignable",
    "Members", "Owners", "Guests", "Orphaned", "Dynamic", "OnPremSynced", "ActivityStatus",
]


def _sort_key(row):
    # role holders first, then most members
    return (not row.assigned_roles, -(row.member_count or 0), row.display_name.casefold(), row.group_id)


def run(client, args):
    fncPrintMessage("Running Privileged Groups", "info")
    _, result = fncGetAssessment(client, args)

    privileged = sorted((r for r in result.rows if r.is_privileged), key=_sort_key)
    table = fncRowDicts(privileged, PRIVILEGED_COLUMNS)

    both = f"{PRIV_ROLE_ASSIGNMENT}+{PRIV_ROLE_ASSIGNABLE}"
    by_source = {PRIV_ROLE_ASSIGNMENT: 0, PRIV_ROLE_ASSIGNABLE: 0, both: 0}
    for r in privileged:
        by_source[r.privilege_source] = by_source.get(r.privilege_source, 0) + 1

    orphaned = sum(1 for r in privileged if r.is_orphaned)
    with_guests = sum(1 for r in privileged if r.guest_count)
    dynamic = sum(1 for r in privileged if r.is_dynamic)

    role_counts = {}
    for r in privileged:
        for role in r.assigned_roles:
            role_counts[role] = role_counts.get(role, 0) + 1
    roles_table = [
        {"Role": role, "Groups": n}
        for role, n in sorted(role_counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]

    fncPrintMessage("[•] Privileged groups", "info")
    print(fncToTable(table, headers=["DisplayName", "PrivilegeSource", "AssignedRoles", "Members", "Owners"],
                     max_rows=50))
    if orphaned:
        fncPrintMessage(f"{orphaned} privileged group(s) have no owner.", "warn")
    if dynamic:
        fncPrintMessage(f"{dynamic} privileged group(s) use dynamic membership.", "warn")

    labels = [k for k, v in by_source.items() if v]
    data = fncModuleData("privileged_groups", result)
    data.update({
        "summary": {
            "Privileged Groups": len(privileged),
            "Holding Directory Roles": by_source[PRIV_ROLE_ASSIGNMENT] + by_source[both],
            "Role-Assignable": by_source[PRIV_ROLE_ASSIGNABLE] + by_source[both],
            "Role-Assignable Without Roles": by_source[PRIV_ROLE_ASSIGNABLE],
            "Privileged Without Owner": orphaned,
            "Privileged With Guests": with_guests,
            "Privileged Dynamic": dynamic,
        },
        "privileged_groups": table,
        "roles_held": roles_table,
        "_kpis": [
            {"label": "Privileged Groups", "value": str(len(privileged)), "tone": "danger"},
            {"label": "No Owner", "value": str(orphaned), "tone": "danger" if orphaned else "success"},
            {"label": "With Guests", "value": str(with_guests), "tone": "warning" if with_guests else "success"},
            {"label": "Dynamic", "value": str(dynamic), "tone": "warning" if dynamic else "success"},
        ],
        "_charts": {
            "summary": {
                "title": "Privilege source",
                "labels": labels,
                "data": [by_source[k] for k in labels],
            }
        },
        "_title": "Privileged Groups",
        "_subtitle": "Groups with directory role assignments or role-assignable",
        "_section_titles": {"privileged_groups": "Privileged Groups", "roles_held": "Roles Held By Groups"},
    })

    fncPrintMessage(f"Privileged Groups complete — {len(privileged)} group(s)", "success")
    return data
