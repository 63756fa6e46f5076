# ================================================================
# File     : modules/entra/group_activity.py
# Purpose  : Last activity, status and recommended action per group
# Notes    : Sampled member sign-in stats appear in their own table
# ================================================================

from groupkennel.core.models import ActivityStatus
from groupkennel.core.utils import fncIsoOrBlank, fncPrintMessage, fncToTable
from groupkennel.modules.entra._assessment import fncGetAssessment, fncModuleData, fncRowDicts

REQUIRED_PERMS = ["Group.Read.All", "Reports.Read.All", "AuditLog.Read.All"]

ACTIVITY_COLUMNS = [
    "Id", "DisplayName", "Category", "Members", "LastActivity", "LastActivitySource",
    "DaysSinceActivity", "ActivityStatus", "RecommendedAction", "Partial",
]


def _member_rows(result):
    names = {r.group_id: r.display_name for r in result.rows}
    out = []
    for gid, m in sorted(result.member_activity.items(), key=lambda kv: names.get(kv[0], "").casefold()):
        out.append({
            "Id": gid,
            "DisplayName": names.get(gid, ""),
            "MembersChecked": m.members_checked,
            "ActiveMembers": m.active_members,
            "InactiveMembers": m.inactive_members,
            "NeverSignedIn": m.never_signed_in,
            "PercentActive": m.percent_active,
            "LastMemberSignIn": fncIsoOrBlank(m.last_member_sign_in) or None,
        })
    return out


def run(client, args):
    fncPrintMessage("Running Group Activity", "info")
    _, result = fncGetAssessment(client, args)
    summary = result.summary
    threshold = result.inactive_days_threshold

    action_rows = fncRowDicts(result.requiring_action, ACTIVITY_COLUMNS)
    all_rows = fncRowDicts(
        sorted(result.rows, key=lambda r: (r.days_since_activity is None, -(r.days_since_activity or 0),
                                           r.display_name.casefold(), r.group_id)),
        ACTIVITY_COLUMNS,
    )
    member_rows = _member_rows(result)

    fncPrintMessage(f"[•] Groups requiring action (inactive after {threshold} days)", "info")
    print(fncToTable(
        action_rows,
        headers=["DisplayName", "Category", "DaysSinceActivity", "ActivityStatus", "RecommendedAction"],
        max_rows=50,
    ))
    if member_rows:
        fncPrintMessage("[•] Member sign-in sample", "info")
        print(fncToTable(member_rows, headers=["DisplayName", "MembersChecked", "ActiveMembers", "PercentActive"]))

    status = summary.by_activity_status
    pct = summary.by_activity_status_percent
    data = fncModuleData("group_activity", result)
    data.update({
        "summary": {
            "Inactivity Threshold (days)": threshold,
            "Total Groups": summary.total_groups,
            "Active": f"{status[ActivityStatus.ACTIVE]} ({pct[ActivityStatus.ACTIVE]}%)",
            "Inactive": f"{status[ActivityStatus.INACTIVE]} ({pct[ActivityStatus.INACTIVE]}%)",
            "No Activity Data": f"{status[ActivityStatus.NO_DATA]} ({pct[ActivityStatus.NO_DATA]}%)",
            "Requiring Action": summary.requiring_action,
            "Member Samples": len(member_rows),
        },
        "requiring_action": action_rows,
        "all_groups": all_rows,
        "member_sign_in_sample": member_rows,
        "_kpis": [
            {"label": "Active", "value": str(status[ActivityStatus.ACTIVE]), "tone": "success"},
            {"label": "Inactive", "value": str(status[ActivityStatus.INACTIVE]), "tone": "warning"},
            {"label": "No Activity Data", "value": str(status[ActivityStatus.NO_DATA]), "tone": "primary"},
            {"label": "Requiring Action", "value": str(summary.requiring_action), "tone": "danger",
             "delta": f"threshold {threshold} days"},
        ],
        "_charts": {
            "summary": {
                "title": "Activity status",
                "labels": list(ActivityStatus.ALL),
                "data": [status[s] for s in ActivityStatus.ALL],
            }
        },
        "_title": "Group Activity",
        "_subtitle": f"Groups idle for more than {threshold} days and what to do about them",
        "_section_titles": {
            "requiring_action": "Requiring Action",
            "all_groups": "All Groups",
            "member_sign_in_sample": "Member Sign-In Sample",
        },
    })

    fncPrintMessage(f"Group Activity complete — {summary.requiring_action} group(s) need action", "success")
    return data
