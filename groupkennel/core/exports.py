# ================================================================
# File     : exports.py
# Purpose  : Handle all export logic for GroupKennel (HTML, CSV, JSON)
# Notes    : Called by GroupKennel.py after module(s) finish
# ================================================================

import pathlib
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from groupkennel.core.utils import fncPrintMessage, fncEnsureFolder, fncExportCSV, fncWriteJSON
from groupkennel.core.reporting import fncWriteHTMLReport, fncWriteHTMLReportMulti

DEFAULT_REPORTS_ROOT = pathlib.Path.home() / ".groupkennel" / "reports"
SUPPORTED_FORMATS = {"html", "csv", "json"}


# ================================================================
# Function: fncExportList
# Purpose  : Flatten --export values ("html,csv json") into a set
# ================================================================
def fncExportList(args_export: Optional[Iterable[Any]]) -> set:
    if not args_export:
        return set()
    if isinstance(args_export, str):
        args_export = [args_export]

    out = set()
    for chunk in args_export:
        items = chunk if isinstance(chunk, (list, tuple)) else [chunk]
        for item in items:
            if not isinstance(item, str):
                continue
            for part in item.replace(",", " ").split():
                out.add(part.strip().lower())

    unknown = out - SUPPORTED_FORMATS
    for fmt in sorted(unknown):
        fncPrintMessage(f"Ignoring unknown export format: {fmt}", "warn")
    return out & SUPPORTED_FORMATS


# ================================================================
# Function: fncGetExportPath
# Purpose  : Build <root>/<timestamp>/<module>/ and create it
# ================================================================
def fncGetExportPath(module_name: str, root: Optional[pathlib.Path] = None,
                     timestamp: Optional[str] = None) -> pathlib.Path:
    root = pathlib.Path(root) if root else DEFAULT_REPORTS_ROOT
    ts = timestamp or datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    mod_slug = module_name.replace("/", "_").replace("\\", "_")
    out_dir = root / ts / mod_slug
    fncEnsureFolder(out_dir)
    return out_dir


def _table_items(data: Dict[str, Any]):
    """(key, rows) for every non-empty list-of-dict table in a module result."""
    for key, val in (data or {}).items():
        if key == "summary" or key.startswith("_"):
            continue
        if isinstance(val, list) and val and isinstance(val[0], dict):
            yield key, val


def _json_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in (data or {}).items() if not k.startswith("_")}


# ================================================================
# Function: fncExportSingleModule
# Purpose  : Handle all export formats for one module
# ================================================================
def fncExportSingleModule(module_name: str, data: dict, formats: set,
                          root: Optional[pathlib.Path] = None) -> pathlib.Path:
    out_dir = fncGetExportPath(module_name, root)

    if "json" in formats:
        fncWriteJSON(str(out_dir / f"{module_name}.json"), _json_payload(data))

    if "csv" in formats:
        for key, rows in _table_items(data):
            fncExportCSV(str(out_dir / f"{module_name}_{key}.csv"), rows)

    if "html" in formats:
        fncWriteHTMLReport(str(out_dir / f"{module_name}.html"), module_name, data)

    fncPrintMessage(f"Exports written → {out_dir}", "success")
    return out_dir


# ================================================================
# Function: fncExportMultiModule
# Purpose  : Handle all export formats when running multiple modules
# ================================================================
def fncExportMultiModule(results: dict, formats: set,
                         root: Optional[pathlib.Path] = None) -> pathlib.Path:
    out_dir = fncGetExportPath("ALL_MODULES", root)
    results = {m: d for m, d in (results or {}).items() if isinstance(d, dict) and not d.get("skipped")}

    if "json" in formats:
        fncWriteJSON(str(out_dir / "all_modules.json"), {m: _json_payload(d) for m, d in results.items()})

    if "csv" in formats:
        for mod, data in results.items():
            mod_dir = out_dir / mod
            fncEnsureFolder(mod_dir)
            for key, rows in _table_items(data):
                fncExportCSV(str(mod_dir / f"{mod}_{key}.csv"), rows)

    if "html" in formats:
        fncWriteHTMLReportMulti(str(out_dir / "GroupKennel_Report.html"), results)

    fncPrintMessage(f"Exports written → {out_dir}", "success")
    return out_dir
