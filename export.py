from __future__ import annotations

from io import BytesIO
from typing import Optional

import matplotlib.pyplot as plt

from gantt_engine import GanttLayout
from gantt_models import GanttSettings
from renderer import render_gantt


def export_pdf_bytes(layout: GanttLayout, settings: Optional[GanttSettings] = None) -> bytes:
    fig, _ = render_gantt(layout, settings, preview=False)
    bio = BytesIO()
    fig.savefig(bio, format="pdf", facecolor="white")
    # Close to avoid figure buildup in long-running processes
    plt.close(fig)
    return bio.getvalue()


def export_png_bytes(
    layout: GanttLayout,
    settings: Optional[GanttSettings] = None,
    *,
    dpi: int = 300,
) -> bytes:
    # Caller picks the DPI independently of settings.output_dpi
    settings = (settings or GanttSettings()).model_copy(update={"output_dpi": dpi})
    fig, _ = render_gantt(layout, settings, preview=False)
    bio = BytesIO()
    fig.savefig(bio, format="png", dpi=dpi, facecolor="white")
    plt.close(fig)
    return bio.getvalue()


def preview_png_bytes(
    layout: GanttLayout,
    settings: Optional[GanttSettings] = None,
    *,
    dpi: int = 100,
) -> bytes:
    fig, _ = render_gantt(layout, settings, preview=True, preview_dpi=dpi)
    bio = BytesIO()
    fig.savefig(bio, format="png", dpi=dpi, facecolor="white")
    plt.close(fig)
    return bio.getvalue()
