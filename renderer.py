from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import matplotlib
import matplotlib.pyplot as plt
from matplotlib.patches import FancyBboxPatch, Polygon, Rectangle

from bar_placement import BarPlacement, MilestonePlacement
from gantt_engine import GanttLayout
from gantt_models import GanttSettings
from status_utils import OVERDUE_COLOR, STATUS_COLORS, STATUS_LABELS

HEADER_ROWS = 3  # month, weekday, day of month

HDR_BG_MONTH = "#838383"
HDR_BG_DAY = "#BEBEBE"
HDR_BG_DATE = "#E2E2E2"
SEPARATOR = "#E5E7EB"
WEEKEND_BG = "#51515230"
ZEBRA_B = "#0000000A"
TODAY_COLOR = "#EF444490"
EDGE_COLOR = "#374151"
TEXT = "#111827"

# Pixels per inch used to turn layout sizes (pixels) into figure inches.
_PX_PER_INCH = 100.0


def _font_family_available(family: str) -> bool:
    family = (family or "").strip()
    if not family:
        return False
    fam_lower = family.lower()
    from matplotlib import font_manager as fm
    for f in fm.fontManager.ttflist:
        if f.name.lower() == fam_lower:
            return True
    return False


def resolve_font_family(preferred: str) -> str:
    """
    Returns a font family name that matplotlib can actually render.
    Priority:
      1) preferred, if available
      2) DejaVu Sans (matplotlib default)
    """
    preferred = (preferred or "").strip()
    if preferred and _font_family_available(preferred):
        return preferred
    return "DejaVu Sans"


def _lighten_hex(hex_color: str, amount: float) -> str:
    """Blend a color with white. amount in [0, 1]."""
    import matplotlib.colors as mcolors

    try:
        r, g, b = mcolors.to_rgb(hex_color)
    except ValueError:
        return hex_color
    r = r + (1.0 - r) * amount
    g = g + (1.0 - g) * amount
    b = b + (1.0 - b) * amount
    return mcolors.to_hex((r, g, b))


def figure_size_inches(layout: GanttLayout, settings: GanttSettings) -> Tuple[float, float]:
    width_px = settings.label_width + layout.domain.day_count * settings.cell_width
    height_px = HEADER_ROWS * settings.header_height + max(len(layout.rows), 1) * settings.row_height + 24
    return width_px / _PX_PER_INCH, height_px / _PX_PER_INCH


def _draw_header(ax, layout: GanttLayout, hdr_h: float, preview: bool) -> None:
    """Month / weekday / date bands above the rows (negative y)."""
    fs = 7 if preview else 8
    y_month = -HEADER_ROWS * hdr_h
    y_dow = y_month + hdr_h
    y_dom = y_dow + hdr_h

    for m in layout.domain.months:
        ax.add_patch(
            Rectangle(
                (m.start_column, y_month),
                m.column_count,
                hdr_h,
                facecolor=HDR_BG_MONTH,
                edgecolor=SEPARATOR,
                linewidth=0.8,
                zorder=2,
            )
        )
        ax.text(
            m.start_column + m.column_count / 2.0,
            y_month + hdr_h * 0.52,
            m.label,
            ha="center",
            va="center",
            fontsize=fs + 1,
            color=TEXT,
            zorder=3,
            clip_on=True,
        )

    for i, d in enumerate(layout.domain.days):
        for y0, face, label in ((y_dow, HDR_BG_DAY, d.weekday_label[:2]), (y_dom, HDR_BG_DATE, str(d.day_of_month))):
            ax.add_patch(
                Rectangle((i, y0), 1.0, hdr_h, facecolor=face, edgecolor=SEPARATOR, linewidth=0.5, zorder=2)
            )
            ax.text(i + 0.5, y0 + hdr_h * 0.52, label, ha="center", va="center", fontsize=fs - 1, color=TEXT, zorder=3)


def _draw_labels(ax, layout: GanttLayout, preview: bool) -> None:
    fs = 8 if preview else 9
    for i, row in enumerate(layout.rows):
        indent = 0.04 + 0.06 * row.depth
        if row.type == "project":
            glyph = "▾" if row.id in layout.open_projects else "▸"
            weight = "bold"
        elif row.type == "task":
            glyph = "▾" if row.id in layout.open_tasks else "▸"
            weight = "normal"
        else:
            glyph = "◆"
            weight = "normal"
        ax.text(
            indent,
            i + 0.5,
            f"{glyph} {row.label}",
            ha="left",
            va="center",
            fontsize=fs,
            fontweight=weight,
            color=TEXT,
            clip_on=True,
        )


def _draw_bar(ax, p: BarPlacement, row_pad: float) -> None:
    y0 = p.row_index + row_pad
    h = 1.0 - 2 * row_pad
    face = STATUS_COLORS[p.color_key]
    if p.color_key == "finished-actual":
        face = _lighten_hex(face, 0.35)
    ax.add_patch(
        FancyBboxPatch(
            (p.column_start, y0),
            p.column_span,
            h,
            boxstyle="round,pad=0.0,rounding_size=0.15",
            facecolor=face,
            edgecolor="none",
            alpha=0.9,
            zorder=5,
        )
    )
    if p.overdue is not None:
        ax.add_patch(
            Rectangle(
                (p.overdue.column_start, y0),
                p.overdue.column_span,
                h,
                facecolor=OVERDUE_COLOR,
                edgecolor="none",
                alpha=0.92,
                zorder=5,
            )
        )


def _draw_milestone(ax, p: MilestonePlacement) -> None:
    cx = p.column + 0.5
    cy = p.row_index + 0.5
    half_w, half_h = 0.35, 0.3
    ax.add_patch(
        Polygon(
            [(cx, cy - half_h), (cx + half_w, cy), (cx, cy + half_h), (cx - half_w, cy)],
            closed=True,
            facecolor=STATUS_COLORS[p.color_key],
            edgecolor="#111111" if p.is_roadblock else "#FFFFFF",
            linewidth=1.6 if p.is_roadblock else 1.2,
            linestyle=(0, (3, 2)) if p.is_roadblock else "solid",
            zorder=7,
        )
    )


def _draw_edges(ax, layout: GanttLayout, settings: GanttSettings) -> None:
    cw, rh = settings.cell_width, settings.row_height
    for edge in layout.edges:
        path = edge.elbow(cw, rh)
        pts = [(x / cw, y / rh) for x, y in path.points]
        xs = [x for x, _ in pts[:-1]]
        ys = [y for _, y in pts[:-1]]
        ax.plot(xs, ys, color=EDGE_COLOR, linewidth=1.0, zorder=6, solid_capstyle="butt")
        ax.annotate(
            "",
            xy=pts[-1],
            xytext=pts[-2],
            arrowprops={"arrowstyle": "-|>", "color": EDGE_COLOR, "lw": 1.0, "shrinkA": 0, "shrinkB": 4},
            zorder=6,
        )


def _draw_legend(ax, preview: bool) -> None:
    x_cursor = 0.0
    for key in ("started", "paused", "paused-problem", "finished-actual", "pending"):
        ax.add_patch(
            Rectangle(
                (x_cursor, 1.01),
                0.012,
                0.012,
                transform=ax.transAxes,
                facecolor=STATUS_COLORS[key],
                edgecolor="none",
                clip_on=False,
            )
        )
        ax.text(
            x_cursor + 0.016,
            1.016,
            STATUS_LABELS[key],
            transform=ax.transAxes,
            ha="left",
            va="center",
            fontsize=7 if preview else 8,
        )
        x_cursor += 0.1


def render_gantt(
    layout: GanttLayout,
    settings: Optional[GanttSettings] = None,
    *,
    preview: bool = False,
    preview_dpi: int = 100,
) -> Tuple[plt.Figure, Dict[str, List[str]]]:
    """
    Draws one layout frame. Returns (fig, warnings).

    warnings: dict categories -> messages (rows without a drawable date,
    overdue bars)
    """
    settings = settings or GanttSettings()
    matplotlib.rcParams["font.family"] = resolve_font_family(settings.font_family)

    n_days = layout.domain.day_count
    n_rows = max(len(layout.rows), 1)
    hdr_h = settings.header_height / settings.row_height

    fig_w, fig_h = figure_size_inches(layout, settings)
    fig = plt.figure(figsize=(fig_w, fig_h), dpi=preview_dpi if preview else settings.output_dpi)
    gs = fig.add_gridspec(
        nrows=1,
        ncols=2,
        width_ratios=[settings.label_width, n_days * settings.cell_width],
        wspace=0.0,
    )
    ax_labels = fig.add_subplot(gs[0, 0])
    ax_main = fig.add_subplot(gs[0, 1], sharey=ax_labels)

    top = -HEADER_ROWS * hdr_h
    for ax in (ax_main, ax_labels):
        ax.spines[:].set_visible(False)
        ax.tick_params(left=False, labelleft=False, bottom=False, labelbottom=False)
        ax.set_xticks([])
        ax.set_yticks([])
    ax_main.set_xlim(0, n_days)
    ax_labels.set_xlim(0, 1)
    ax_main.set_ylim(n_rows, top)
    ax_labels.set_facecolor("#F6F8FB")
    ax_labels.vlines(1.0, top, n_rows, colors=SEPARATOR, linewidth=1.0)

    for label, y0 in (("Month", top), ("Day", top + hdr_h), ("Date", top + 2 * hdr_h)):
        ax_labels.text(0.04, y0 + hdr_h * 0.52, label, ha="left", va="center", fontsize=8, color=TEXT)

    _draw_header(ax_main, layout, hdr_h, preview)

    # Weekend shading and zebra rows sit behind everything else.
    for i, d in enumerate(layout.domain.days):
        if d.is_weekend:
            ax_main.add_patch(Rectangle((i, 0), 1.0, n_rows, facecolor=WEEKEND_BG, edgecolor="none", zorder=0))
    for i in range(len(layout.rows)):
        if i % 2 == 1:
            ax_main.add_patch(Rectangle((0, i), n_days, 1.0, facecolor=ZEBRA_B, edgecolor="none", zorder=0))
        ax_main.hlines(i, 0, n_days, colors="#EFEFEF", linewidth=0.5, zorder=1)

    ti = layout.domain.today_index
    ax_main.add_patch(Rectangle((ti + 0.42, top), 0.16, n_rows - top, facecolor=TODAY_COLOR, edgecolor="none", zorder=4))

    _draw_labels(ax_labels, layout, preview)

    warnings: Dict[str, List[str]] = {"unplaced": [], "overdue": []}
    for row, placement in zip(layout.rows, layout.placements):
        if placement is None:
            warnings["unplaced"].append(f"{row.type} {row.id}: '{row.label}' has no usable date.")
        elif isinstance(placement, MilestonePlacement):
            _draw_milestone(ax_main, placement)
        else:
            _draw_bar(ax_main, placement, row_pad=0.2 if row.type == "project" else 0.25)
            if placement.overdue is not None:
                warnings["overdue"].append(f"{row.type} {row.id}: {placement.overdue.label}")

    _draw_edges(ax_main, layout, settings)
    _draw_legend(ax_main, preview)
    return fig, warnings
