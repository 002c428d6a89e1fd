import io
import json
import math
from datetime import datetime
from typing import Mapping, Optional

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from config import RISK_HIGH_CHANGE_PCT, RISK_MEDIUM_CHANGE_PCT, WHAT_IF_DAMPING_FACTOR
from event_aggregator import congestion_stats, group_by_link
from schema_normalizer import NormalizedAnalysis, format_gbps, format_pct
from what_if import LinkImpact

BRAND_BLUE = "#124191"


def _clean(value):
    """NaN is not valid JSON; export it as null."""
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def analysis_to_json(analysis: NormalizedAnalysis, impact: Optional[Mapping[str, LinkImpact]] = None) -> str:
    """JSON export of the normalized snapshot (and the current what-if result, if any)."""
    summary = analysis.summary
    payload = {
        "timestamp": datetime.now().isoformat(),
        "topology": {l: list(cells) for l, cells in analysis.topology.items()},
        "topology_confidence": {l: _clean(v) for l, v in analysis.confidence.items()},
        "outliers": [{"cell_id": o.cell_id, "link_id": o.link_id, "reason": o.reason} for o in analysis.outliers],
        "capacity": {
            "no_buffer_gbps": {l: _clean(v) for l, v in analysis.capacity_no_buffer.items()},
            "with_buffer_gbps": {l: _clean(v) for l, v in analysis.capacity_with_buffer.items()},
        },
        "bandwidth_savings_pct": {l: _clean(v) for l, v in analysis.bandwidth_savings.items()},
        "root_cause_attribution": {
            link_id: [
                {"time_sec": _clean(e.timestamp),
                 "contributors": [{"cell_id": c.cell_id, "pct": _clean(c.pct)} for c in e.contributors]}
                for e in events
            ]
            for link_id, events in group_by_link(analysis.events).items()
        },
        "summary": {
            "link_count": summary.link_count,
            "cell_count": summary.cell_count,
            "average_confidence": _clean(summary.average_confidence),
            "average_saving_pct": _clean(summary.average_saving),
            "total_capacity_reduction_gbps": _clean(summary.total_capacity_reduction_gbps),
            "total_events": summary.total_events,
        },
    }
    if impact:
        payload["what_if"] = {
            link_id: {
                "total_change_pct": i.total_change_pct,
                "capacity_change_gbps": round(i.capacity_change_gbps, 4),
                "projected_gbps": round(i.projected_gbps, 4),
                "risk": i.risk,
                "affected_cells": list(i.affected_cells),
            }
            for link_id, i in impact.items()
        }
    return json.dumps(payload, indent=2)


def _table(data, col_widths):
    t = Table(data, colWidths=col_widths)
    t.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(BRAND_BLUE)),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
        ("ALIGN", (0, 0), (-1, -1), "LEFT"),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, 0), 11),
        ("BOTTOMPADDING", (0, 0), (-1, 0), 10),
        ("BACKGROUND", (0, 1), (-1, -1), colors.beige),
        ("GRID", (0, 0), (-1, -1), 1, colors.black),
    ]))
    return t


def generate_report(analysis: NormalizedAnalysis, impact: Optional[Mapping[str, LinkImpact]] = None) -> io.BytesIO:
    """PDF report of the loaded analysis."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4)
    story = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        "ReportTitle", parent=styles["Heading1"], fontSize=22,
        textColor=colors.HexColor(BRAND_BLUE), spaceAfter=24, alignment=TA_CENTER,
    )
    heading_style = ParagraphStyle(
        "ReportHeading", parent=styles["Heading2"], fontSize=15,
        textColor=colors.HexColor(BRAND_BLUE), spaceAfter=10, spaceBefore=10,
    )

    story.append(Paragraph("O-RAN Fronthaul Topology &amp; Congestion Report", title_style))
    story.append(Paragraph(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}", styles["Normal"]))
    story.append(Spacer(1, 0.3 * inch))

    summary = analysis.summary
    stats = congestion_stats(analysis.events)
    story.append(Paragraph("Executive Summary", heading_style))
    best = summary.highest_confidence
    lines = [
        f"• {summary.link_count} fronthaul links inferred over {summary.cell_count} cells",
        f"• Average topology confidence: {format_pct(summary.average_confidence)}",
        f"• Average bandwidth savings from buffering: {format_pct(summary.average_saving)}",
        f"• Total capacity reduction: {format_gbps(summary.total_capacity_reduction_gbps)}",
        f"• Congestion events: {summary.total_events}",
    ]
    if best:
        lines.append(f"• Highest confidence: Link {best[0]} at {best[1]:.1f}%")
    if stats.top_cell is not None:
        lines.append(f"• Top congestion contributor: Cell {stats.top_cell} (avg {stats.top_average_pct:.1f}%)")
    if summary.outlier_cells:
        lines.append("• Outlier cells: " + ", ".join(f"Cell {c}" for c in summary.outlier_cells))
    story.append(Paragraph("<br/>".join(lines), styles["Normal"]))
    story.append(Spacer(1, 0.3 * inch))

    story.append(Paragraph("Link-by-Link Capacity", heading_style))
    data = [["Link", "Cells", "Confidence", "No Buffer", "With Buffer", "Savings"]]
    for link_id in analysis.links:
        data.append([
            f"Link {link_id}",
            str(len(analysis.topology[link_id])),
            format_pct(analysis.confidence.get(link_id)),
            format_gbps(analysis.capacity_no_buffer.get(link_id)),
            format_gbps(analysis.capacity_with_buffer.get(link_id)),
            format_pct(analysis.bandwidth_savings.get(link_id)),
        ])
    if len(data) == 1:
        data.append(["—"] * 6)
    story.append(_table(data, [0.9 * inch, 0.6 * inch, 1.0 * inch, 1.2 * inch, 1.2 * inch, 0.9 * inch]))
    story.append(Spacer(1, 0.3 * inch))

    story.append(Paragraph("Congestion Root Cause", heading_style))
    data = [["Link", "Time (s)", "Top Contributors"]]
    for e in analysis.events:
        top = ", ".join(f"Cell {c.cell_id} ({c.pct:.1f}%)" for c in e.contributors[:3])
        data.append([f"Link {e.link_id}", f"{e.timestamp:.2f}", top or "—"])
    if len(data) == 1:
        data.append(["—", "—", "No congestion events"])
    story.append(_table(data, [0.9 * inch, 0.9 * inch, 4.0 * inch]))

    if impact:
        story.append(PageBreak())
        story.append(Paragraph("What-If Simulation", heading_style))
        data = [["Link", "Traffic Change", "Capacity Change", "Projected", "Risk"]]
        for link_id in sorted(impact):
            i = impact[link_id]
            data.append([
                f"Link {link_id}", f"{i.total_change_pct:+.0f}%", f"{i.capacity_change_gbps:+.2f} Gbps",
                format_gbps(i.projected_gbps), i.risk.upper(),
            ])
        story.append(_table(data, [0.9 * inch, 1.2 * inch, 1.4 * inch, 1.2 * inch, 0.8 * inch]))
        story.append(Spacer(1, 0.2 * inch))
        story.append(Paragraph(
            f"Simulated impact is a local estimate: summed per-link traffic change, damped by "
            f"{WHAT_IF_DAMPING_FACTOR}, with risk thresholds at {RISK_MEDIUM_CHANGE_PCT:.0f}% and "
            f"{RISK_HIGH_CHANGE_PCT:.0f}% change. It is not produced by the analysis service.",
            styles["Normal"],
        ))

    doc.build(story)
    buffer.seek(0)
    return buffer
