# ================================================================
# File     : core/reporting.py
# Purpose  : Generate static HTML dashboards (single + multi module)
#            from module data dicts: KPI cards, summary table with a
#            category doughnut (Chart.js), and every list[dict] table.
# Notes    : Keys starting with "_" are layout hints, not tables.
# ================================================================

import os, html, datetime, re, json
from typing import Dict, Any, List, Tuple

from groupkennel.core.utils import fncPrintMessage

CHARTJS_TAG = '<script src="https://cdn.jsdelivr.net/npm/chart.js@4.4.1/dist/chart.umd.min.js"></script>'

# Keys that carry layout/meta, never rendered as tables
_META_KEYS = {"summary", "tenant_stats"}


# ---------- tiny helpers ----------

def _esc(v: Any) -> str:
    return "" if v is None else html.escape(str(v))

def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", str(name).lower()).strip("-")

def _humanise(key: str) -> str:
    return " ".join(part.capitalize() for part in str(key).split("_") if part) or str(key)

def _section_title(key: str, titles: Dict[str, str]) -> str:
    return titles.get(key) or _humanise(key)

def _cell_html(val: Any) -> str:
    """dict/list → collapsible pretty JSON; None → blank; bool → Yes/No."""
    if isinstance(val, (dict, list)):
        compact = json.dumps(val, ensure_ascii=False, separators=(",", ":"), default=str)
        summ = compact if len(compact) <= 180 else compact[:180] + f" … +{len(compact) - 180} chars"
        pretty = json.dumps(val, ensure_ascii=False, indent=2, default=str)
        return f"<details class='gk-json'><summary>{_esc(summ)}</summary><pre>{_esc(pretty)}</pre></details>"
    if isinstance(val, bool):
        return "Yes" if val else "No"
    return _esc(val)


# ----- status helpers (for coloured pills) -----

def _status_class(column: str, value: Any) -> str | None:
    """CSS pill class for status-like columns, or None for plain cells."""
    v = str(value or "").strip().lower()
    if column == "ActivityStatus":
        return {"active": "ok", "inactive": "warn", "noactivitydata": "unknown"}.get(v, "unknown")
    if column == "RecommendedAction":
        if not v:
            return None
        return "crit" if "delete" in v else "warn"
    if column in ("Empty", "Orphaned", "Privileged", "Oversized") and isinstance(value, bool):
        return "crit" if value else "ok"
    return None


# ---------- base CSS ----------

def _base_css() -> str:
    return """
:root{
  --brand:#2f855a; --brand-dark:#22543d; --ink:#1a202c; --paper:#f7faf8;
  --panel:#ffffff; --rule:#dbe4de; --faint:#5f6f66;
  --ok:#2f855a; --warn:#c05621; --crit:#c53030; --unknown:#718096;
}
@media (prefers-color-scheme: dark){
  :root{ --ink:#e2e8f0; --paper:#111614; --panel:#1a211e; --rule:#2c3833; --faint:#a0b3a8; }
}
*{box-sizing:border-box}
body{margin:0;font-family:system-ui,"Segoe UI",Roboto,sans-serif;font-size:14px;line-height:1.45;
  background:var(--paper);color:var(--ink)}
header.banner{background:var(--brand-dark);border-bottom:4px solid var(--brand);color:#fff;padding:18px 32px}
header.banner h1{margin:0;font-size:1.6rem;letter-spacing:.02em}
header.banner h2{margin:2px 0;font-size:1.1rem;font-weight:400}
header.banner p{margin:2px 0;font-size:.85rem;opacity:.8}
.container{max-width:1800px;margin:20px auto;padding:18px 24px;background:var(--panel);
  border:1px solid var(--rule);border-radius:8px}
h3{margin:14px 0 6px 0;color:var(--brand);font-size:1.15rem}
.card{margin:16px 0}
.card h4{margin:0 0 6px 0}
.card h4 small{color:var(--faint);font-weight:400}
.tablewrap{overflow-x:auto}
table{width:100%;border-collapse:collapse;font-size:.9rem}
th,td{padding:6px 9px;border:1px solid var(--rule);text-align:left;vertical-align:top}
thead th{background:var(--brand);color:#fff;position:sticky;top:0}
tbody tr:hover td{background:color-mix(in srgb,var(--brand) 8%, transparent)}
table.summary{max-width:640px}
table.summary th{background:transparent;color:var(--ink);width:50%}
.pill{padding:1px 8px;border-radius:6px;font-size:.78rem;font-weight:600;white-space:nowrap;
  color:#fff}
.pill.ok{background:var(--ok)} .pill.warn{background:var(--warn)}
.pill.crit{background:var(--crit)} .pill.unknown{background:var(--unknown)}
.kpis{display:flex;flex-wrap:wrap;gap:10px;margin-bottom:8px}
.kpi{flex:1 1 180px;padding:10px 14px;border:1px solid var(--rule);border-left:4px solid var(--brand);border-radius:6px}
.kpi .label{font-size:.8rem;text-transform:uppercase;color:var(--faint)}
.kpi .value{font-size:1.6rem;font-weight:700}
.kpi .delta{font-size:.8rem;color:var(--faint)}
.kpi.danger{border-left-color:var(--crit)} .kpi.warning{border-left-color:var(--warn)}
.kpi.success{border-left-color:var(--ok)}
.summary-grid{display:flex;flex-wrap:wrap;gap:16px;align-items:flex-start}
.summary-grid > div:first-child{flex:1 1 420px}
.summary-chart{flex:0 1 360px;padding:8px;border:1px solid var(--rule);border-radius:6px}
.gk-json > summary{cursor:pointer;font-family:ui-monospace,Consolas,monospace;font-size:.8rem}
.gk-json pre{max-height:300px;overflow:auto;font-size:.8rem}
nav.tabbar{max-width:1800px;margin:18px auto 0 auto;display:flex;flex-wrap:wrap;gap:6px;padding:0 8px}
nav.tabbar button{border:1px solid var(--rule);background:var(--panel);color:var(--ink);
  padding:6px 14px;border-radius:6px 6px 0 0;cursor:pointer}
nav.tabbar button.active{background:var(--brand);border-color:var(--brand);color:#fff}
.tabpanel{display:none} .tabpanel.active{display:block}
footer{text-align:center;color:var(--faint);font-size:.8rem;margin:20px 0}
"""


# ---------- header & dashboard ----------

def _header_html(title: str, subtitle: str | None = None) -> str:
    stamp = datetime.datetime.now(datetime.timezone.utc).strftime("%d %b %Y %H:%M UTC")
    lines = ["<h1>GroupKennel</h1>", f"<h2>{_esc(title)}</h2>"]
    if subtitle:
        lines.append(f"<p>{_esc(subtitle)}</p>")
    lines.append(f"<p>Assessed {_esc(stamp)}</p>")
    return f'<header class="banner">{"".join(lines)}</header>'

def _render_kpis(kpis: List[Dict[str, Any]]) -> str:
    if not kpis:
        return ""
    blocks = []
    for k in kpis:
        tone = _esc(k.get("tone", "primary")) or "primary"
        delta = k.get("delta")
        delta_html = f'<div class="delta">{_esc(delta)}</div>' if delta else ""
        blocks.append(
            f'<div class="kpi {tone}"><div class="label">{_esc(k.get("label", ""))}</div>'
            f'<div class="value">{_esc(k.get("value", ""))}</div>{delta_html}</div>'
        )
    return f'<div class="kpis">{"".join(blocks)}</div>'

def _summary_html(summary: Dict[str, Any]) -> str:
    if not summary:
        return "<p>No summary data available.</p>"
    body = "".join(f"<tr><th>{_esc(label)}</th><td>{_esc(value)}</td></tr>" for label, value in summary.items())
    return f"<table class='summary'><tbody>{body}</tbody></table>"

def _summary_with_chart(summary: Dict[str, Any], chart: Dict[str, Any] | None) -> Tuple[str, str]:
    """Summary table next to a doughnut. Returns (html, js); js empty when no chart."""
    summary_html = _summary_html(summary)
    if not chart or not chart.get("data"):
        return summary_html, ""
    canvas_id = f"gk-chart-{os.urandom(4).hex()}"
    config = {
        "type": "doughnut",
        "data": {"labels": chart.get("labels", []), "datasets": [{"data": chart.get("data", [])}]},
        "options": {"plugins": {"legend": {"position": "right"}}},
    }
    chart_html = (
        f'<div class="summary-chart"><h4>{_esc(chart.get("title", "Breakdown"))}</h4>'
        f'<canvas id="{canvas_id}" height="200"></canvas></div>'
    )
    js = f'new Chart(document.getElementById("{canvas_id}"), {json.dumps(config)});\n'
    return f"<div class='summary-grid'><div>{summary_html}</div>{chart_html}</div>", js


# ---------- tables ----------

def _render_table(rows: List[Dict[str, Any]], title: str) -> str:
    if not rows:
        return f"<div class='card'><h4>{_esc(title)}</h4><p>No data.</p></div>"
    cols: List[str] = []
    for r in rows:
        for c in r.keys():
            if c not in cols:
                cols.append(c)

    thead = "<tr>" + "".join(f"<th>{_esc(c)}</th>" for c in cols) + "</tr>"
    body_rows = []
    for r in rows:
        tds = []
        for c in cols:
            raw = r.get(c)
            cls = _status_class(c, raw)
            if cls:
                tds.append(f"<td><span class='pill {cls}'>{_cell_html(raw)}</span></td>")
            else:
                tds.append(f"<td>{_cell_html(raw)}</td>")
        body_rows.append("<tr>" + "".join(tds) + "</tr>")

    return (
        f'<div class="card"><h4>{_esc(title)} <small>{len(rows)} row(s)</small></h4>'
        f'<div class="tablewrap"><table data-section="{_slug(title)}">'
        f'<thead>{thead}</thead><tbody>{"".join(body_rows)}</tbody></table></div></div>'
    )

def _details_html(data_dict: Dict[str, Any]) -> str:
    titles = data_dict.get("_section_titles") or {}
    parts = []
    for key, value in data_dict.items():
        if key in _META_KEYS or key.startswith("_"):
            continue
        if isinstance(value, list) and all(isinstance(item, dict) for item in value):
            parts.append(_render_table(value, _section_title(key, titles)))
    return "\n".join(parts)

def _module_body(data: Dict[str, Any]) -> Tuple[str, str, bool]:
    """Return (body_html, js, needs_chartjs) for one module's data dict."""
    charts = data.get("_charts") or {}
    summary, chart_js = _summary_with_chart(data.get("summary", {}), charts.get("summary"))
    body = (
        '<div class="container">'
        f'{_render_kpis(data.get("_kpis") or [])}'
        f"<h3>Summary</h3>{summary}{_details_html(data)}"
        "</div>"
    )
    return body, chart_js, bool(chart_js)

def _footer_html() -> str:
    return "<footer>GroupKennel: read-only Entra group governance assessment</footer>"

def _write(filename: str, html_doc: str) -> None:
    os.makedirs(os.path.dirname(filename) or ".", exist_ok=True)
    with open(filename, "w", encoding="utf-8") as f:
        f.write(html_doc)
    fncPrintMessage(f"HTML report written to {filename}", "success")


# ================================================================
# Single-module report
# ================================================================
def fncWriteHTMLReport(filename: str, module_name: str, data_dict: Dict[str, Any]) -> None:
    fncPrintMessage(f"Generating HTML report: {filename}", "info")
    data_dict = data_dict or {}
    header = _header_html(data_dict.get("_title") or f"Module: {module_name}", data_dict.get("_subtitle"))
    body, js, needs_chartjs = _module_body(data_dict)

    html_doc = f"""<!DOCTYPE html>
<html lang="en"><head>
<meta charset="UTF-8"><title>GroupKennel Report - {_esc(module_name)}</title>
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<style>{_base_css()}</style></head><body>
{header}
{body}
{_footer_html()}
{CHARTJS_TAG if needs_chartjs else ""}
{f"<script>{js}</script>" if js else ""}
</body></html>"""
    _write(filename, html_doc)


# ================================================================
# Multi-module report
# ================================================================
def fncWriteHTMLReportMulti(filename: str, modules: Dict[str, Dict[str, Any]]) -> None:
    fncPrintMessage(f"Generating multi-module HTML report: {filename}", "info")
    header = _header_html("Entra group governance", "All assessment modules")

    buttons, panels, scripts = [], [], []
    needs_chartjs = False
    for idx, (mod_name, data) in enumerate(modules.items()):
        data = data if isinstance(data, dict) else {}
        sid = _slug(mod_name)
        active = "active" if idx == 0 else ""
        label = data.get("_title") or _humanise(mod_name)
        body, js, needs = _module_body(data)
        needs_chartjs = needs_chartjs or needs
        if js:
            scripts.append(js)
        buttons.append(f'<button class="{active}" data-tab="{sid}">{_esc(label)}</button>')
        panels.append(f'<section id="{sid}" class="tabpanel {active}">{body}</section>')

    tabs_js = """
document.querySelectorAll('nav.tabbar button').forEach(btn => btn.addEventListener('click', () => {
  document.querySelectorAll('nav.tabbar button, .tabpanel').forEach(el => el.classList.remove('active'));
  btn.classList.add('active');
  document.getElementById(btn.dataset.tab).classList.add('active');
}));
"""

    html_doc = f"""<!DOCTYPE html>
<html lang="en"><head>
<meta charset="UTF-8"><title>GroupKennel Report — All Modules</title>
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<style>{_base_css()}</style></head><body>
{header}
<nav class="tabbar">{''.join(buttons)}</nav>
{''.join(panels)}
{_footer_html()}
{CHARTJS_TAG if needs_chartjs else ""}
<script>{tabs_js}{''.join(scripts)}</script>
</body></html>"""
    _write(filename, html_doc)
