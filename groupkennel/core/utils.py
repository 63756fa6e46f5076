# ================================================================
# File     : utils.py
# Purpose  : Common helpers for GroupKennel (console, files, time, data)
# Notes    : British English; witty output
# ================================================================

import os
import json
import csv
import math
import time
import uuid
import pathlib
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from colorama import Fore, Style, init as _colorama_init
from tabulate import tabulate

_colorama_init(autoreset=True)

DEBUG_ENABLED = False


# ================================================================
# Function: fncSetDebug
# Purpose : Globally enable/disable debug output
# Notes   : Called from main after parsing --debug
# ================================================================
def fncSetDebug(enabled: bool) -> None:
    global DEBUG_ENABLED
    DEBUG_ENABLED = bool(enabled)


# ================================================================
# Function: fncPrintMessage
# Purpose : Standardised console output with levels and colours
# Notes   : Levels: info, warn, error, success, debug
# ================================================================
def fncPrintMessage(message: str, level: str = "info") -> None:
    if level == "debug" and not DEBUG_ENABLED:
        return
    colours = {
        "info": Fore.CYAN,
        "warn": Fore.YELLOW,
        "error": Fore.RED,
        "success": Fore.GREEN,
        "debug": Fore.MAGENTA
    }
    prefix = {
        "info": "[•]",
        "warn": "[!]",
        "error": "[✗]",
        "success": "[✓]",
        "debug": "[∆]"
    }
    colour = colours.get(level, "")
    mark = prefix.get(level, "[ ]")
    print(f"{colour}{mark} {message}{Style.RESET_ALL}")


# ================================================================
# Function: fncDisplayBanner
# Purpose : Display GroupKennel ASCII banner, shaded top to bottom
# Notes   : Kennel mascot sits to the right of the title
# ================================================================
def fncDisplayBanner(version: str = "v1.0"):
    banner_lines = [
        "  ____                        _  __                      _ ",
        " / ___|_ __ ___  _   _ _ __  | |/ /___ _ __  _ __   ___| |",
        "| |  _| '__/ _ \\| | | | '_ \\ | ' // _ \\ '_ \\| '_ \\ / _ \\ |",
        "| |_| | | | (_) | |_| | |_) || . \\  __/ | | | | | |  __/ |",
        " \\____|_|  \\___/ \\__,_| .__/ |_|\\_\\___|_| |_|_| |_|\\___|_|",
        "                      |_|                                  ",
    ]

    kennel_lines = [
        "     /\\      ",
        "    /  \\     ",
        "   /____\\    ",
        "   | __ |    ",
        "   |_||_|    ",
    ]

    shades = [Fore.GREEN, Fore.GREEN, Fore.CYAN, Fore.CYAN, Fore.BLUE, Fore.BLUE]

    print("\n")
    width = max(len(line) for line in banner_lines) + 4
    kennel_lines += [""] * (len(banner_lines) - len(kennel_lines))
    for shade, title, kennel in zip(shades, banner_lines, kennel_lines):
        print(f"{shade}{title.ljust(width)}{Fore.YELLOW}{kennel}{Style.RESET_ALL}")

    print(f"{Fore.CYAN}\nGroupKennel {version} — 'Every group needs a good home (or a tidy exit).'{Style.RESET_ALL}\n")


# ================================================================
# Function: fncBlurb
# Purpose : Display a witty blurb describing current action
# Notes   : Shown once at scan start
# ================================================================
def fncBlurb(action: str, flavour: str = None):
    blurbs = {
        "entra": [
            "Counting heads in every Entra kennel…",
            "Rounding up strays, orphans and empty pens…",
            "Sniffing out groups nobody has walked in months…"
        ],
        "generic": [
            "Unlocking the kennel doors…",
            "Polishing the name tags…",
        ]
    }

    import random
    flavour_text = flavour or random.choice(blurbs.get(action, blurbs["generic"]))
    fncPrintMessage(flavour_text, "info")


# ================================================================
# Function: fncEnsureFolder
# Purpose : Create a folder if it does not exist
# Notes   : Returns pathlib.Path object
# ================================================================
def fncEnsureFolder(path: str) -> pathlib.Path:
    p = pathlib.Path(path).expanduser().resolve()
    p.mkdir(parents=True, exist_ok=True)
    return p


# ================================================================
# Function: fncLoadEnv
# Purpose : Read environment variable with default
# Notes   : Strips quotes; returns default if unset
# ================================================================
def fncLoadEnv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.getenv(name, default)
    if isinstance(val, str):
        return val.strip().strip('"').strip("'")
    return val


# ================================================================
# Function: fncReadJSON
# Purpose : Load JSON from file safely
# Notes   : Returns {} on failure when safe=True
# ================================================================
def fncReadJSON(path: str, safe: bool = True) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as ex:
        if safe:
            fncPrintMessage(f"Could not read JSON '{path}': {ex}", "warn")
            return {}
        raise


# ================================================================
# Function: fncWriteJSON
# Purpose : Write data to JSON with nice formatting
# Notes   : Datetimes and dataclass leftovers fall back to str()
# ================================================================
def fncWriteJSON(path: str, data: Dict[str, Any]) -> None:
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=fncJsonDefault)
    fncPrintMessage(f"Saved JSON → {p}", "success")


def fncJsonDefault(value: Any) -> Any:
    if isinstance(value, datetime):
        return fncIsoOrBlank(value)
    if isinstance(value, (set, frozenset, tuple)):
        return sorted(value) if isinstance(value, (set, frozenset)) else list(value)
    return str(value)


# ================================================================
# Function: fncExportCSV
# Purpose : Save list[dict] or list[list] to CSV
# Notes   : Dict headers keep first-seen key order; None → blank
# ================================================================
def fncExportCSV(path: str, rows: Iterable[Any]) -> None:
    rows = list(rows)
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    if not rows:
        p.write_text("", encoding="utf-8")
        fncPrintMessage(f"Created empty CSV → {p}", "warn")
        return

    if isinstance(rows[0], dict):
        headers = list(dict.fromkeys(key for row in rows for key in row))
        with p.open("w", newline="", encoding="utf-8") as handle:
            writer = csv.DictWriter(handle, fieldnames=headers)
            writer.writeheader()
            writer.writerows({key: _csv_value(row.get(key)) for key in headers} for row in rows)
    else:
        with p.open("w", newline="", encoding="utf-8") as handle:
            csv.writer(handle).writerows([_csv_value(v) for v in row] for row in rows)

    fncPrintMessage(f"Saved CSV → {p}", "success")


def _csv_value(val: Any) -> Any:
    if val is None:
        return ""
    if isinstance(val, datetime):
        return fncIsoOrBlank(val)
    if isinstance(val, (list, tuple, set, frozenset)):
        return "; ".join(str(v) for v in val)
    if isinstance(val, dict):
        return json.dumps(val, ensure_ascii=False, default=fncJsonDefault)
    return val


# ================================================================
# Function: fncParseDateTime
# Purpose : Parse Graph timestamps and report dates into aware UTC
# Notes   : Accepts ISO8601 (with/without Z), YYYY-MM-DD, datetime and
#           US-style MM/DD/YYYY (with or without a time).
#           Returns None for blanks or anything unparseable.
# ================================================================
def fncParseDateTime(val: Any) -> Optional[datetime]:
    if val is None or val == "":
        return None
    if isinstance(val, datetime):
        return val if val.tzinfo else val.replace(tzinfo=timezone.utc)
    s = str(val).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    # Graph returns anywhere from 1 to 7 fractional digits; fromisoformat
    # on 3.10 only takes 3 or 6
    if "." in s:
        head, _, tail = s.partition(".")
        frac = ""
        rest = ""
        for i, ch in enumerate(tail):
            if not ch.isdigit():
                rest = tail[i:]
                break
            frac += ch
        s = f"{head}.{frac[:6].ljust(6, '0')}{rest}" if frac else head + rest
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        for fmt in ("%m/%d/%Y", "%m/%d/%Y %H:%M:%S"):
            try:
                dt = datetime.strptime(s, fmt)
                break
            except ValueError:
                continue
        else:
            return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


# ================================================================
# Function: fncIsoOrBlank
# Purpose : Render an optional datetime for tables and exports
# ================================================================
def fncIsoOrBlank(dt: Optional[datetime]) -> str:
    if not dt:
        return ""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# ================================================================
# Function: fncUtcNow
# Purpose : Aware UTC "now"; single seam for tests to freeze time
# ================================================================
def fncUtcNow() -> datetime:
    return datetime.now(timezone.utc)


# ================================================================
# Function: fncPercent
# Purpose : count/total*100 rounded to 2dp; empty denominator → 0
# ================================================================
def fncPercent(count: int, total: int) -> float:
    if not total:
        return 0
    return round(count / total * 100, 2)


# ================================================================
# Function: fncFloorDays
# Purpose : Whole days between two aware datetimes (floored)
# ================================================================
def fncFloorDays(later: datetime, earlier: datetime) -> int:
    return math.floor((later - earlier).total_seconds() / 86400)


# ================================================================
# Function: fncChunkList
# Purpose : Yield items in fixed-size chunks
# Notes   : Used for $filter batching against Graph
# ================================================================
def fncChunkList(items: List[Any], size: int) -> Iterable[List[Any]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


# ================================================================
# Function: fncRetry
# Purpose : Simple retry wrapper with backoff
# Notes   : backoff in seconds; returns fn result or raises.
#           retry_if(ex) -> False raises immediately (e.g. 4xx).
# ================================================================
def fncRetry(fn, attempts: int = 3, backoff: float = 1.5, exceptions: Tuple = (Exception,),
             retry_if: Optional[Callable[[Exception], bool]] = None):
    last_ex: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except exceptions as ex:
            last_ex = ex
            if retry_if is not None and not retry_if(ex):
                raise
            if attempt < attempts:
                sleep_for = backoff ** (attempt - 1)
                fncPrintMessage(f"Attempt {attempt}/{attempts} failed: {ex}. Retrying in {sleep_for:.1f}s…", "warn")
                time.sleep(sleep_for)
            else:
                fncPrintMessage(f"All {attempts} attempts failed: {ex}", "error")
                raise
    if last_ex:
        raise last_ex


# ================================================================
# Function: fncToTable
# Purpose : Render rows as a table string
# Notes   : Supports list[dict] (keys become headers) or list[list]
# ================================================================
def fncToTable(rows: Iterable[Any], headers: Optional[List[str]] = None, max_rows: Optional[int] = None) -> str:
    rows = list(rows)
    truncated = 0
    if max_rows and len(rows) > max_rows:
        truncated = len(rows) - max_rows
        rows = rows[:max_rows]

    if not rows:
        return "(no data)"

    if isinstance(rows[0], dict):
        hdrs = headers or list(rows[0].keys())
        table_rows = [["" if r.get(h) is None else r.get(h) for h in hdrs] for r in rows]
        out = tabulate(table_rows, headers=hdrs, tablefmt="github")
    else:
        out = tabulate(rows, headers=(headers or "firstrow"), tablefmt="github")
    if truncated:
        out += f"\n… {truncated} more row(s) not shown"
    return out


# ================================================================
# Function: fncMask
# Purpose : Mask sensitive strings (client secrets, tokens)
# Notes   : Keeps start/end visible; handles short strings
# ================================================================
def fncMask(value: Optional[str], show: int = 4) -> str:
    if not value:
        return ""
    if len(value) <= show * 2:
        return "*" * len(value)
    return f"{value[:show]}{'*' * (len(value) - (show*2))}{value[-show:]}"


# ================================================================
# Function: fncNewRunId
# Purpose : Generate a short unique run identifier
# Notes   : Useful for correlating logs and outputs
# ================================================================
def fncNewRunId(prefix: str = "run") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"
