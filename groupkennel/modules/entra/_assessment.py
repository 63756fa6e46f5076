# ================================================================
# File     : modules/entra/_assessment.py
# Purpose  : Shared fetch + assessment for the entra modules
# Notes    : The first module to ask builds the snapshot and runs the
#            pipeline; later modules in the same run reuse the result
#            (cached on args, guarded by a lock for --parallel).
#            Leading underscore keeps it out of module discovery.
# ================================================================

import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from groupkennel.core.config import fncDefaultConfig, fncGetAssessmentConfig
from groupkennel.core.errors import DirectoryUnavailableError
from groupkennel.core.models import DirectorySnapshot, SummaryRow
from groupkennel.core.pipeline import AssessmentResult, fncRunAssessment
from groupkennel.core.utils import fncNewRunId, fncPrintMessage
from groupkennel.handlers.graph.directory import DirectoryFetchAdapter

_LOCK = threading.Lock()


def fncAssessmentSettings(args) -> Dict[str, Any]:
    cfg = getattr(args, "cfg", None) or fncDefaultConfig()
    return fncGetAssessmentConfig(cfg)


# ================================================================
# Function: fncGetAssessment
# Purpose : Return (snapshot, result), fetching at most once per run
# Notes   : A failed group listing is remembered and re-raised, so
#           later modules fail fast instead of fetching again.
# ================================================================
def fncGetAssessment(client, args) -> Tuple[DirectorySnapshot, AssessmentResult]:
    with _LOCK:
        cached = getattr(args, "_assessment", None)
        if cached is not None:
            fncPrintMessage("Reusing directory snapshot from earlier module.", "debug")
            return cached
        failure = getattr(args, "_assessment_error", None)
        if failure is not None:
            raise failure

        settings = fncAssessmentSettings(args)
        adapter = DirectoryFetchAdapter(client, parallel=settings["parallel"])
        try:
            snapshot = adapter.build_snapshot(
                inactive_days=settings["inactive_days_threshold"],
                include_guests=settings["include_guests"],
                include_audit=settings["include_audit"],
            )
        except DirectoryUnavailableError as ex:
            args._assessment_error = ex
            raise
        result = fncRunAssessment(
            snapshot,
            inactive_days_threshold=settings["inactive_days_threshold"],
            parallel=settings["parallel"],
            member_sample=settings["member_sample"],
            member_fetcher=adapter.fetch_member_sign_ins,
        )
        args._assessment = (snapshot, result)
        return args._assessment


def fncRowDicts(rows: List[SummaryRow], columns: List[str] = None) -> List[Dict[str, Any]]:
    """SummaryRow → export dicts, optionally narrowed to `columns` (in order)."""
    out = []
    for r in rows:
        d = r.to_dict()
        out.append({c: d.get(c) for c in columns} if columns else d)
    return out


def fncModuleData(name: str, result: AssessmentResult) -> Dict[str, Any]:
    """Common header fields every entra module result carries."""
    return {
        "provider": "entra",
        "module": name,
        "run_id": fncNewRunId(name.split("_")[0]),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "inactive_days_threshold": result.inactive_days_threshold,
    }


def fncWarningsTable(snapshot: DirectorySnapshot) -> List[Dict[str, Any]]:
    rows = [{"Scope": "Tenant", "Message": w} for w in snapshot.warnings]
    for gid, errors in sorted(snapshot.fetch_errors.items()):
        rows.extend({"Scope": gid, "Message": e} for e in errors)
    return rows
