# ================================================================
# File     : directory.py
# Purpose  : Directory Fetch Adapter: turns Graph calls into the
#            typed records the assessment pipeline consumes
# Notes    : - Listing groups is the only fatal call; nothing can be
#              assessed without it.
#            - Per-group failures (counts, guests, member sign-ins) are
#              logged and recorded on the snapshot; the run continues.
#            - Each (group, source) pair is requested at most once.
# ================================================================

import csv
import io
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import requests

from groupkennel.core.activity import (
    DEFAULT_INACTIVE_DAYS,
    fncSignalsFromAudits,
    fncSignalsFromRenewals,
    fncSignalsFromReportRows,
)
from groupkennel.core.errors import (
    DirectoryUnavailableError,
    GraphAuthError,
    GraphRequestError,
    ReportUnavailableError,
)
from groupkennel.core.governance import fncCountGuests
from groupkennel.core.models import ActivitySignal, DirectorySnapshot, GroupRecord
from groupkennel.core.utils import fncChunkList, fncIsoOrBlank, fncPrintMessage, fncUtcNow
from groupkennel.handlers.graph.graph_helpers import safe_select_get_all

GROUP_FIELDS = [
    "id", "displayName", "description", "groupTypes", "securityEnabled", "mailEnabled",
    "isAssignableToRole", "createdDateTime", "renewedDateTime", "onPremisesSyncEnabled",
    "visibility", "membershipRule",
]

REPORT_PERIODS = (7, 30, 90, 180)
AUDIT_LOOKBACK_DAYS = 30  # Entra keeps directory audits for 30 days
USER_BATCH_SIZE = 15      # Graph caps "id in (...)" filters at 15 values

REQUIRED_PERMS = [
    "Group.Read.All",
    "Directory.Read.All",
    "RoleManagement.Read.Directory",
    "Reports.Read.All",
    "AuditLog.Read.All",
]


def fncReportPeriod(inactive_days: int) -> str:
    """Smallest usage-report period covering the threshold, capped at D180."""
    for p in REPORT_PERIODS:
        if inactive_days <= p:
            return f"D{p}"
    return f"D{REPORT_PERIODS[-1]}"


def fncParseReportCsv(text: str) -> List[Dict[str, Any]]:
    text = (text or "").lstrip("\ufeff")
    if not text.strip():
        return []
    return list(csv.DictReader(io.StringIO(text)))


class DirectoryFetchAdapter:
    """Read-only fetcher over an explicit GraphClient."""

    def __init__(self, client, parallel: int = 1):
        self.client = client
        self.parallel = max(1, int(parallel or 1))

    # ---------- helpers ----------

    def _map(self, fn: Callable, items: List[Any]) -> List[Any]:
        if self.parallel <= 1 or len(items) < 2:
            return [fn(i) for i in items]
        with ThreadPoolExecutor(max_workers=self.parallel) as executor:
            return list(executor.map(fn, items))

    # ---------- groups ----------

    def fetch_raw_groups(self) -> List[Dict[str, Any]]:
        try:
            items, missing = safe_select_get_all(self.client, "groups", GROUP_FIELDS)
        except GraphRequestError as ex:
            if ex.is_auth_error():
                raise GraphAuthError(f"Not allowed to list groups (needs Group.Read.All): {ex}", ex) from ex
            raise DirectoryUnavailableError(f"Could not list groups: {ex}", ex) from ex
        except requests.RequestException as ex:
            raise DirectoryUnavailableError(f"Could not reach Microsoft Graph to list groups: {ex}", ex) from ex
        if missing:
            fncPrintMessage(f"Group properties unavailable in this tenant: {', '.join(missing)}", "warn")
        fncPrintMessage(f"Fetched {len(items)} group(s)", "info")
        return items

    def _count(self, group_id: str, relation: str, snapshot: DirectorySnapshot) -> Optional[int]:
        try:
            return self.client.get_count(f"groups/{group_id}/{relation}/$count")
        except GraphRequestError as ex:
            fncPrintMessage(f"Could not count {relation} for group {group_id}: {ex}", "warn")
            snapshot.record_error(group_id, f"{relation} count unavailable ({ex.status_code})")
            return None

    def fetch_groups(self, snapshot: DirectorySnapshot) -> List[GroupRecord]:
        raw_groups = self.fetch_raw_groups()

        def _build(raw: Dict[str, Any]) -> GroupRecord:
            gid = raw["id"]
            return GroupRecord.from_graph(
                raw,
                member_count=self._count(gid, "members", snapshot),
                owner_count=self._count(gid, "owners", snapshot),
            )

        return self._map(_build, raw_groups)

    # ---------- roles ----------

    def fetch_role_assignments(self, snapshot: DirectorySnapshot) -> Dict[str, List[str]]:
        """principalId → role names for every directory role assignment."""
        try:
            assignments = self.client.get_all(
                "roleManagement/directory/roleAssignments"
                "?$select=id,principalId,roleDefinitionId,directoryScopeId"
                "&$expand=roleDefinition($select=displayName)"
            )
        except GraphRequestError as ex:
            fncPrintMessage(f"Role assignments unavailable; privilege falls back to role-assignable only: {ex}", "warn")
            snapshot.warnings.append(f"role assignments unavailable ({ex.status_code})")
            return {}

        out: Dict[str, List[str]] = {}
        for a in assignments:
            pid = a.get("principalId")
            if not pid:
                continue
            name = (a.get("roleDefinition") or {}).get("displayName") or a.get("roleDefinitionId") or "(unknown role)"
            out.setdefault(pid, [])
            if name not in out[pid]:
                out[pid].append(name)
        return out

    # ---------- guests ----------

    def fetch_member_users(self, group_id: str) -> List[Dict[str, Any]]:
        return self.client.get_all(
            f"groups/{group_id}/members/microsoft.graph.user?$select=id,userType,userPrincipalName"
        )

    def fetch_guest_counts(self, groups: List[GroupRecord], snapshot: DirectorySnapshot) -> Dict[str, Optional[int]]:
        def _one(g: GroupRecord):
            if g.member_count == 0:
                return g.id, 0
            try:
                return g.id, fncCountGuests(self.fetch_member_users(g.id))
            except GraphRequestError as ex:
                fncPrintMessage(f"Member enumeration failed for group {g.display_name or g.id}: {ex}", "warn")
                snapshot.record_error(g.id, f"guest count unavailable ({ex.status_code})")
                return g.id, None

        return dict(self._map(_one, groups))

    # ---------- activity sources ----------

    def _report_strategies(self, report: str, period: str) -> List[Callable[[], List[Dict[str, Any]]]]:
        endpoint = f"reports/{report}(period='{period}')"
        return [
            lambda: fncParseReportCsv(self.client.get_text(endpoint)),
            lambda: self.client.get_all(f"{endpoint}?$format=application/json", api="beta"),
        ]

    def fetch_report_rows(self, report: str, period: str) -> List[Dict[str, Any]]:
        """Try each strategy in order; first success wins."""
        failures = []
        for idx, strategy in enumerate(self._report_strategies(report, period), start=1):
            try:
                rows = strategy()
                fncPrintMessage(f"{report}: {len(rows)} row(s) via strategy {idx}", "debug")
                return rows
            except (GraphRequestError, ValueError) as ex:
                fncPrintMessage(f"{report} strategy {idx} failed: {ex}", "debug")
                failures.append(str(ex))
        raise ReportUnavailableError(f"{report} unavailable: {' | '.join(failures)}")

    def fetch_report_signals(self, inactive_days: int, snapshot: DirectorySnapshot) -> List[ActivitySignal]:
        period = fncReportPeriod(inactive_days)
        signals: List[ActivitySignal] = []
        for report in ("getOffice365GroupsActivityDetail", "getTeamsTeamActivityDetail"):
            try:
                signals.extend(fncSignalsFromReportRows(self.fetch_report_rows(report, period)))
            except ReportUnavailableError as ex:
                fncPrintMessage(f"No report-based signal from {report}: {ex}", "warn")
                snapshot.warnings.append(f"{report} unavailable")
        return signals

    def fetch_audit_entries(self, since: datetime) -> List[Dict[str, Any]]:
        return self.client.get_all(
            "auditLogs/directoryAudits"
            f"?$filter=category eq 'GroupManagement' and activityDateTime ge {fncIsoOrBlank(since)}"
            "&$select=id,activityDateTime,activityDisplayName,targetResources"
        )

    def fetch_audit_signals(self, now: datetime, snapshot: DirectorySnapshot) -> List[ActivitySignal]:
        try:
            entries = self.fetch_audit_entries(now - timedelta(days=AUDIT_LOOKBACK_DAYS))
        except GraphRequestError as ex:
            fncPrintMessage(f"Directory audit log unavailable: {ex}", "warn")
            snapshot.warnings.append(f"audit log unavailable ({ex.status_code})")
            return []
        return fncSignalsFromAudits(entries)

    def fetch_member_sign_ins(self, group_id: str) -> List[Dict[str, Any]]:
        """Member users with signInActivity; batched lookups, one group at a time."""
        members = self.fetch_member_users(group_id)
        ids = [m["id"] for m in members if m.get("id")]
        users: List[Dict[str, Any]] = []
        for chunk in fncChunkList(ids, USER_BATCH_SIZE):
            id_list = ",".join(f"'{i}'" for i in chunk)
            users.extend(self.client.get_all(
                f"users?$filter=id in ({id_list})&$select=id,userPrincipalName,signInActivity"
            ))
        return users

    # ---------- snapshot ----------

    def build_snapshot(
        self,
        inactive_days: int = DEFAULT_INACTIVE_DAYS,
        include_guests: bool = False,
        include_activity: bool = True,
        include_audit: bool = True,
        now: Optional[datetime] = None,
    ) -> DirectorySnapshot:
        now = now or fncUtcNow()
        snapshot = DirectorySnapshot(fetched_at=now)

        snapshot.groups = self.fetch_groups(snapshot)
        snapshot.role_assignments = self.fetch_role_assignments(snapshot)

        if include_guests:
            fncPrintMessage("Enumerating members for guest counts (this can take a while)...", "info")
            snapshot.guest_counts = self.fetch_guest_counts(snapshot.groups, snapshot)

        if include_activity:
            snapshot.signals.extend(fncSignalsFromRenewals(snapshot.groups))
            snapshot.signals.extend(self.fetch_report_signals(inactive_days, snapshot))
            if include_audit:
                snapshot.signals.extend(self.fetch_audit_signals(now, snapshot))

        return snapshot
