"""
Time-series charts of region means (the local counterpart of
``ui.Chart.image.series``): interactive HTML with plotly, static PNG with
matplotlib.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import plotly.express as px  # noqa: E402

from cmrset.analytics.timeseries import TimeSeries  # noqa: E402
from cmrset.visualization.legend import normalize_color  # noqa: E402

# Irrigation-estimate comparison: band -> series name
IRREST_SERIES: Dict[str, str] = {
    "irrest_irrisat": "IrriSAT",
    "ETa_kamble": "Kamble",
    "irrest_swir2": "CMRSET with SWIR2",
    "irrest_swir1": "CMRSET with SWIR1",
}


@dataclass
class ChartOptions:
    """Presentation options shared by the HTML and PNG charts."""

    title: str = ""
    x_title: str = "Date"
    y_title: str = "Irrest (mm per month)"
    colors: List[str] = field(
        default_factory=lambda: ["red", "orange", "blue", "cyan"]
    )
    line_width: int = 5
    # "function" draws smoothed curves
    curve_type: str = "function"


def _series(ts: TimeSeries, series_names: Optional[Dict[str, str]]) -> TimeSeries:
    if series_names:
        return ts.rename(series_names)
    return ts


def plot_series_html(
    ts: TimeSeries,
    output_path: str,
    options: Optional[ChartOptions] = None,
    series_names: Optional[Dict[str, str]] = None,
):
    """Write an interactive line chart of every band of *ts* and return the figure."""
    options = options or ChartOptions()
    ts = _series(ts, series_names)
    fig = px.line(
        ts.to_long(),
        x="date",
        y="value",
        color="series",
        title=options.title,
        color_discrete_sequence=[normalize_color(c) for c in options.colors],
        line_shape="spline" if options.curve_type == "function" else "linear",
        labels={"date": options.x_title, "value": options.y_title, "series": ""},
    )
    fig.update_traces(line={"width": options.line_width})
    fig.update_layout(
        xaxis_title=f"<b>{options.x_title}</b>",
        yaxis_title=f"<b>{options.y_title}</b>",
    )
    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    fig.write_html(output_path, include_plotlyjs="cdn")
    return fig


def plot_series_png(
    ts: TimeSeries,
    output_path: str,
    options: Optional[ChartOptions] = None,
    series_names: Optional[Dict[str, str]] = None,
) -> None:
    """Save a static line chart of every band of *ts* as PNG."""
    options = options or ChartOptions()
    ts = _series(ts, series_names)
    colors = [normalize_color(c) for c in options.colors]

    plt.figure(figsize=(10, 5))
    for i, band in enumerate(ts.bands):
        color = colors[i % len(colors)] if colors else None
        plt.plot(
            ts.df["date"],
            ts.df[band],
            label=band,
            color=color,
            linewidth=options.line_width / 2,
        )
    plt.xlabel(options.x_title, fontweight="bold")
    plt.ylabel(options.y_title, fontweight="bold")
    plt.title(options.title)
    plt.legend()
    plt.grid(True)

    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    plt.tight_layout()
    plt.savefig(output_path)
    plt.close()
