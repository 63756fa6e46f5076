# ================================================================
# File     : modules/entra/governance_summary.py
# Purpose  : Tenant-wide counts and percentages per category,
#            governance flag and activity status
# ================================================================

from groupkennel.core.aggregator import GOVERNANCE_FLAGS
from groupkennel.core.models import ActivityStatus, GroupCategory
from groupkennel.core.utils import fncPrintMessage, fncToTable
from groupkennel.modules.entra._assessment import fncGetAssessment, fncModuleData, fncRowDicts, fncWarningsTable

REQUIRED_PERMS = ["Group.Read.All", "Directory.Read.All", "Reports.Read.All"]

FLAG_LABELS = {
    "empty": "Empty",
    "orphaned": "No owner",
    "oversized": "Oversized",
    "no_description": "No description",
    "duplicate_name": "Duplicate name",
    "with_guests": "Has guests",
    "privileged": "Privileged",
    "role_assignable": "Role-assignable",
    "dynamic": "Dynamic membership",
    "on_prem_synced": "Synced from on-prem",
}


def _breakdown(keys, counts, percents, label, names=None):
    names = names or {}
    return [{label: names.get(k, k), "Count": counts.get(k, 0), "Percent": percents.get(k, 0)} for k in keys]


def run(client, args):
    fncPrintMessage("Running Governance Summary", "info")
    snapshot, result = fncGetAssessment(client, args)
    s = result.summary

    categories = _breakdown(GroupCategory.ALL, s.by_category, s.by_category_percent, "Category")
    flags = _breakdown(GOVERNANCE_FLAGS, s.by_governance_flag, s.by_governance_flag_percent, "Flag", FLAG_LABELS)
    statuses = _breakdown(ActivityStatus.ALL, s.by_activity_status, s.by_activity_status_percent, "Status")
    partial = fncRowDicts([r for r in result.rows if r.is_partial], ["Id", "DisplayName", "FetchErrors"])

    fncPrintMessage("[•] Governance flags", "info")
    print(fncToTable(flags))
    fncPrintMessage("[•] Activity status", "info")
    print(fncToTable(statuses))
    if s.partial_groups:
        fncPrintMessage(f"{s.partial_groups} group(s) have incomplete data; see partial rows.", "warn")

    flag = s.by_governance_flag
    data = fncModuleData("governance_summary", result)
    data.update({
        "summary": {
            "Total Groups": s.total_groups,
            "Requiring Action": s.requiring_action,
            "Partial Rows": s.partial_groups,
            **{FLAG_LABELS[f]: f"{flag[f]} ({s.by_governance_flag_percent[f]}%)" for f in GOVERNANCE_FLAGS},
        },
        "tenant_stats": s.to_dict(),
        "categories": categories,
        "governance_flags": flags,
        "activity_statuses": statuses,
        "partial_rows": partial,
        "fetch_warnings": fncWarningsTable(snapshot),
        "_kpis": [
            {"label": "Total Groups", "value": str(s.total_groups), "tone": "primary"},
            {"label": "Requiring Action", "value": str(s.requiring_action), "tone": "danger"},
            {"label": "Empty", "value": str(flag["empty"]), "tone": "warning"},
            {"label": "No Owner", "value": str(flag["orphaned"]), "tone": "warning"},
            {"label": "Privileged", "value": str(flag["privileged"]), "tone": "danger"},
        ],
        "_charts": {
            "summary": {
                "title": "Governance flags",
                "labels": [FLAG_LABELS[f] for f in GOVERNANCE_FLAGS if flag[f]],
                "data": [flag[f] for f in GOVERNANCE_FLAGS if flag[f]],
            }
        },
        "_title": "Governance Summary",
        "_subtitle": "Tenant-wide breakdown by category, risk flag and activity",
        "_section_titles": {
            "categories": "By Category",
            "governance_flags": "By Governance Flag",
            "activity_statuses": "By Activity Status",
            "partial_rows": "Partial Rows",
            "fetch_warnings": "Fetch Warnings",
        },
    })

    fncPrintMessage("Governance Summary complete.", "success")
    return data
