from __future__ import annotations

"""
Storm impact report generator
-----------------------------
This module turns a `StormAnalysis` into a DOCX report with:
- a short synopsis,
- a data-processing narrative that shows the cleaning code itself,
- one results section (tables + at most three figures),
- an audit section and a reproducibility footer.

Report dependencies (python-docx, matplotlib) are imported lazily so the
loader and aggregation can be used without them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Tuple
import inspect
import logging
import os
import tempfile

from .aggregate import StormAnalysis, rank
from .loader import DATA_URL
from .normalize import (
    STATE_CORRECTIONS,
    STATE_CORRECTIONS_VERSION,
    correct_state,
    decode_exponent,
    get_canonicalizer,
)

logger = logging.getLogger(__name__)

# At most three rendered figures per report; each may have several panels.
MAX_FIGURES = 3

BILLION = 1e9


# -----------------------------
# Configuration / citation types
# -----------------------------

@dataclass
class DatasetCitation:
    """Minimal dataset citation metadata for the DOCX report."""
    database_name: str = "NOAA Storm Database"
    institutional_author: str = "U.S. National Oceanic and Atmospheric Administration (NOAA)"
    website: str = "https://www.ncdc.noaa.gov/stormevents/"
    source_url: str = DATA_URL
    file_name: Optional[str] = None


@dataclass
class ReportConfig:
    """High-level knobs to control how the report is written."""
    title: str = "Health and Economic Impact of Severe Weather Events in the United States"
    subtitle: str = "An analysis of the NOAA Storm Database"
    citation: DatasetCitation = field(default_factory=DatasetCitation)

    # How many categories to show in bar charts / tables
    top_n: int = 10

    # How many audit rows to print before summarizing the rest
    max_audit_rows: int = 15

    # Include the source of the cleaning functions in the narrative
    show_code: bool = True


# -----------------------------
# Figures
# -----------------------------

def _import_pyplot():
    try:
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
    except ImportError as e:
        raise ImportError(
            "Missing dependency: matplotlib.\n"
            "Install it with: python -m pip install matplotlib"
        ) from e
    return plt


def build_figures(analysis: StormAnalysis, out_dir: str, top_n: int = 10) -> List[Tuple[str, str, str]]:
    """Render the report figures as PNG files in `out_dir`.

    Returns (title, path, caption) for each figure, in report order.
    """
    plt = _import_pyplot()
    os.makedirs(out_dir, exist_ok=True)
    summary = analysis.by_event_type()
    states = analysis.by_state()
    figures: List[Tuple[str, str, str]] = []

    def _save(fig, filename: str) -> str:
        path = os.path.join(out_dir, filename)
        fig.tight_layout()
        fig.savefig(path, dpi=200)
        plt.close(fig)
        return path

    def _panels(title: str, frame, key: str, panels, filename: str, caption: str) -> None:
        if len(figures) >= MAX_FIGURES:
            raise ValueError(f"A report may contain at most {MAX_FIGURES} figures")
        fig, axes = plt.subplots(1, len(panels), figsize=(6 * len(panels), 5))
        if len(panels) == 1:
            axes = [axes]
        for ax, (metric, label, scale, color) in zip(axes, panels):
            top = rank(frame, metric, top_n)
            # largest bar on top
            ax.barh(top[key][::-1], top[metric][::-1] / scale, color=color)
            ax.set_xlabel(label)
            ax.set_title(f"Top {len(top)} by {label.split(' (')[0].lower()}")
        fig.suptitle(title)
        figures.append((title, _save(fig, filename), caption))

    _panels(
        "Population health impact by event type",
        summary, "event_category",
        [("fatalities", "Fatalities", 1, "#d95f02"), ("injuries", "Injuries", 1, "#7570b3")],
        "health_impact.png",
        f"Total fatalities (left) and injuries (right) per event type since {analysis.cutoff:%Y}.",
    )
    _panels(
        "Economic impact by event type",
        summary, "event_category",
        [("property_damage", "Property damage (US$ billion)", BILLION, "#1b9e77"),
         ("crop_damage", "Crop damage (US$ billion)", BILLION, "#e6ab02")],
        "economic_impact.png",
        "Property (left) and crop (right) damage per event type. "
        "Damage with an undecodable exponent code is not included.",
    )
    if len(states) > 1:
        _panels(
            "Impact by state (all event types)",
            states, "state",
            [("health_total", "Fatalities + injuries", 1, "#e7298a"),
             ("total_damage", "Total damage (US$ billion)", BILLION, "#66a61e")],
            "state_impact.png",
            "States ranked by combined casualties (left) and total damage (right).",
        )
    return figures


# -----------------------------
# Main entry point used by CLI
# -----------------------------

def _money(v: float) -> str:
    return f"{v / BILLION:,.2f}"


def _synopsis(analysis: StormAnalysis) -> List[str]:
    records = analysis.records
    first = min(n.record.begin_date for n in records)
    last = max(n.record.begin_date for n in records)
    health = analysis.top("health_total", 1).iloc[0]
    fatal = analysis.top("fatalities", 1).iloc[0]
    econ = analysis.top("total_damage", 1).iloc[0]
    return [
        "This report explores the NOAA Storm Database to find which types of severe "
        "weather events are most harmful to population health and which have the "
        "greatest economic consequences across the United States.",
        f"The analysis covers {len(records):,} events recorded between "
        f"{first.isoformat()} and {last.isoformat()}; earlier records are left out "
        f"because not all event types were recorded before {analysis.cutoff.isoformat()}.",
        f"Free-text event types were grouped into {len(analysis.labels)} categories "
        f"using the '{analysis.strategy}' strategy.",
        f"{health['event_category']} events caused the most casualties "
        f"({int(health['health_total']):,} fatalities and injuries combined), and "
        f"{fatal['event_category']} events caused the most fatalities "
        f"({int(fatal['fatalities']):,}).",
        f"{econ['event_category']} events caused the greatest economic damage "
        f"(US$ {_money(econ['total_damage'])} billion in property and crop damage).",
    ]


def generate_docx_report(
    analysis: StormAnalysis,
    out_path: str,
    *,
    config: Optional[ReportConfig] = None,
) -> str:
    """
    Generate the DOCX report for an analysis.

    The input data file is never modified; everything is computed in memory.
    """
    config = config or ReportConfig()

    # Lazy imports: only required when a report is written.
    try:
        from docx import Document
        from docx.shared import Pt, Inches
        from docx.enum.text import WD_ALIGN_PARAGRAPH
        from docx.oxml.ns import qn
    except ImportError as e:
        raise ImportError(
            "Missing dependency: python-docx.\n"
            "Install it with: python -m pip install python-docx"
        ) from e

    if not analysis.records:
        raise ValueError("No records to report on (dataset is empty after filtering).")

    # -----------------------------
    # 1) Charts
    # -----------------------------
    tmpdir = tempfile.mkdtemp(prefix="stormrep_report_")
    chart_paths = build_figures(analysis, tmpdir, top_n=config.top_n)

    # -----------------------------
    # 2) Build DOCX report
    # -----------------------------
    doc = Document()

    style = doc.styles["Normal"]
    style.font.name = "Calibri"
    style._element.rPr.rFonts.set(qn("w:eastAsia"), "Calibri")
    style.font.size = Pt(11)

    def _center_title(text: str, size: int, bold: bool = False, italic: bool = False) -> None:
        p = doc.add_paragraph()
        r = p.add_run(text)
        r.bold = bold
        r.italic = italic
        r.font.size = Pt(size)
        p.alignment = WD_ALIGN_PARAGRAPH.CENTER

    def _kv(key: str, value: str) -> None:
        p = doc.add_paragraph()
        r = p.add_run(f"{key}: ")
        r.bold = True
        p.add_run(value)

    def _code(text: str) -> None:
        p = doc.add_paragraph()
        r = p.add_run(text.rstrip())
        r.font.name = "Courier New"
        r.font.size = Pt(8)

    def _table(headers: List[str], rows: List[List[str]]) -> None:
        t = doc.add_table(rows=1, cols=len(headers))
        t.style = "Table Grid"
        for cell, h in zip(t.rows[0].cells, headers):
            cell.text = h
        for values in rows:
            cells = t.add_row().cells
            for cell, v in zip(cells, values):
                cell.text = v

    _center_title(config.title, 20, bold=True)
    _center_title(config.subtitle, 12, italic=True)

    # Synopsis
    doc.add_heading("Synopsis", level=1)
    for sentence in _synopsis(analysis):
        doc.add_paragraph(sentence)

    # Data processing
    doc.add_heading("Data Processing", level=1)
    cit = config.citation
    _kv("Source", cit.source_url)
    if cit.file_name:
        _kv("Data file used", cit.file_name)
    _kv("Rows read", f"{analysis.load.rows_read:,}")
    _kv("Rows skipped as malformed", f"{len(analysis.load.issues):,}")
    _kv(f"Rows before {analysis.cutoff.isoformat()} (excluded)", f"{analysis.load.dropped_before_cutoff:,}")
    _kv("Rows analysed", f"{len(analysis.records):,}")

    doc.add_heading("Damage exponents", level=2)
    doc.add_paragraph(
        "Property and crop damage are recorded as an amount plus an exponent code "
        "(PROPDMGEXP / CROPDMGEXP). Codes are decoded to a multiplier as below. "
        "Codes outside this set are marked UNKNOWN: their damage is listed in the "
        "audit section and left out of the totals."
    )
    if config.show_code:
        _code(inspect.getsource(decode_exponent))

    doc.add_heading("State corrections", level=2)
    doc.add_paragraph(
        "A few rows pair a state code with the abbreviation of a neighbouring state. "
        "For each state the most frequent code was taken as the intended one, and the "
        f"rare pairings were repaired with a constant correction table (version {STATE_CORRECTIONS_VERSION}). "
        "The recorded values are kept for auditing."
    )
    _table(
        ["Recorded code", "Recorded state", "Corrected state"],
        [[str(code), name, fixed] for (code, name), fixed in sorted(STATE_CORRECTIONS.items())],
    )
    if config.show_code:
        _code(inspect.getsource(correct_state))

    doc.add_heading("Event types", level=2)
    doc.add_paragraph(
        f"The free-text EVTYPE field has {analysis.distinct_event_types():,} distinct "
        f"values. They were mapped to {len(analysis.labels)} categories with the "
        f"'{analysis.strategy}' strategy; values that match no category are OTHER."
    )
    if config.show_code:
        _code(inspect.getsource(get_canonicalizer(analysis.strategy)))

    # Results
    doc.add_heading("Results", level=1)
    top_health = analysis.top("health_total", config.top_n)
    doc.add_paragraph(f"Top {len(top_health)} event types by fatalities and injuries combined")
    _table(
        ["Event type", "Fatalities", "Injuries", "Total"],
        [[r.event_category, f"{int(r.fatalities):,}", f"{int(r.injuries):,}", f"{int(r.health_total):,}"]
         for r in top_health.itertuples()],
    )
    doc.add_paragraph("")
    top_econ = analysis.top("total_damage", config.top_n)
    doc.add_paragraph(f"Top {len(top_econ)} event types by total damage (US$ billion)")
    _table(
        ["Event type", "Property", "Crop", "Total", "Unknown-exponent records"],
        [[r.event_category, _money(r.property_damage), _money(r.crop_damage),
          _money(r.total_damage), str(int(r.unknown_multiplier_records))]
         for r in top_econ.itertuples()],
    )

    for title, path, caption in chart_paths:
        doc.add_paragraph("")
        doc.add_paragraph(title)
        doc.add_picture(path, width=Inches(6.5))
        doc.add_paragraph(caption)

    # Audit
    doc.add_heading("Audit", level=1)

    def _audit(label: str, frame, fmt: Callable) -> None:
        doc.add_paragraph(f"{label}: {len(frame):,}")
        for row in frame.head(config.max_audit_rows).itertuples():
            doc.add_paragraph(fmt(row), style="List Bullet")
        if len(frame) > config.max_audit_rows:
            doc.add_paragraph(f"... ({len(frame) - config.max_audit_rows:,} more)")

    _audit(
        "Malformed rows skipped",
        analysis.issues_frame(),
        lambda r: f"row {r.row_number}: {r.column}={r.value!r} ({r.message})",
    )
    _audit(
        "Damage values with an unknown exponent code",
        analysis.unknown_multipliers(),
        lambda r: f"row {r.row_id} [{r.event_category}, {r.state}]: {r.field} damage {r.amount:g} with code {r.exponent_code!r}",
    )
    _audit(
        "Rows with a corrected state",
        analysis.state_corrections(),
        lambda r: f"row {r.row_id}: code {r.state_code} {r.recorded_state} -> {r.corrected_state}",
    )

    # Reproducibility footer
    doc.add_heading("Reproducibility footer", level=1)
    from . import __version__ as stormrep_version
    doc.add_paragraph(f"stormrep version: {stormrep_version}")
    doc.add_paragraph(f"Report generated at: {datetime.now().isoformat(timespec='seconds')}")
    doc.add_paragraph(f"Event type strategy: {analysis.strategy}")
    doc.add_paragraph(
        f"Suggested citation: {cit.institutional_author}. {cit.database_name}. {cit.website}."
    )

    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    doc.save(out_path)
    logger.info(f"Report written to {out_path} ({len(chart_paths)} figures)")
    return out_path
