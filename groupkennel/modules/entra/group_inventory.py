# ================================================================
# File     : modules/entra/group_inventory.py
# Purpose  : Every group with its category, counts and governance flags
# Notes    : Category doughnut next to the summary panel
# ================================================================

from groupkennel.core.models import GroupCategory
from groupkennel.core.utils import fncPrintMessage, fncToTable
from groupkennel.modules.entra._assessment import (
    fncGetAssessment,
    fncModuleData,
    fncRowDicts,
    fncWarningsTable,
)

REQUIRED_PERMS = ["Group.Read.All", "Directory.Read.All"]

INVENTORY_COLUMNS = [
    "Id", "DisplayName", "Category", "Dynamic", "RoleAssignable", "OnPremSynced", "Created",
    "Members", "Owners", "Guests", "Empty", "Orphaned", "Oversized", "NoDescription",
    "DuplicateName", "DuplicateCount", "Partial",
]


def run(client, args):
    fncPrintMessage("Running Group Inventory", "info")
    snapshot, result = fncGetAssessment(client, args)
    summary = result.summary

    rows = sorted(result.rows, key=lambda r: (r.category, r.display_name.casefold(), r.group_id))
    inventory = fncRowDicts(rows, INVENTORY_COLUMNS)

    fncPrintMessage("[•] Group inventory", "info")
    print(fncToTable(
        inventory,
        headers=["DisplayName", "Category", "Members", "Owners", "Dynamic", "OnPremSynced"],
        max_rows=50,
    ))

    dynamic = summary.by_governance_flag.get("dynamic", 0)
    synced = summary.by_governance_flag.get("on_prem_synced", 0)
    categories = [c for c in GroupCategory.ALL if summary.by_category.get(c)]

    data = fncModuleData("group_inventory", result)
    data.update({
        "summary": {
            "Total Groups": summary.total_groups,
            **{f"{c} Groups": summary.by_category.get(c, 0) for c in GroupCategory.ALL},
            "Dynamic Membership": dynamic,
            "Synced From On-Prem": synced,
            "Partial Rows": summary.partial_groups,
        },
        "groups": inventory,
        "_kpis": [
            {"label": "Total Groups", "value": str(summary.total_groups), "tone": "primary"},
            {"label": "M365 Groups", "value": str(summary.by_category.get(GroupCategory.M365, 0)), "tone": "primary"},
            {"label": "Security Groups", "value": str(summary.by_category.get(GroupCategory.SECURITY, 0)), "tone": "primary"},
            {"label": "Dynamic", "value": str(dynamic), "tone": "success"},
        ],
        "_charts": {
            "summary": {
                "title": "Groups by category",
                "labels": categories,
                "data": [summary.by_category[c] for c in categories],
            }
        },
        "_title": "Entra Group Inventory",
        "_subtitle": "Category, ownership and membership counts for every group",
        "_section_titles": {"groups": "Groups", "fetch_warnings": "Fetch Warnings"},
    })

    warnings = fncWarningsTable(snapshot)
    if warnings:
        data["fetch_warnings"] = warnings

    fncPrintMessage(f"Group Inventory complete — {summary.total_groups} group(s)", "success")
    return data
