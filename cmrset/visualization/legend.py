"""
Horizontal colour-bar legends for map layers.

A legend shows a title, a colour bar built from the layer palette and three
labels: the minimum, half the maximum and the maximum of the visualisation
range. Legends render to PNG with matplotlib or to an HTML overlay for folium
maps.
"""

import os
import re
from dataclasses import dataclass
from typing import Mapping, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
from matplotlib.colors import LinearSegmentedColormap  # noqa: E402

POSITIONS = ("bottom-left", "bottom-center", "bottom-right", "top-left", "top-right")

_HEX = re.compile(r"^[0-9a-fA-F]{3}([0-9a-fA-F]{3})?$")

_CSS_POSITIONS = {
    "bottom-left": "bottom: 30px; left: 10px;",
    "bottom-center": "bottom: 30px; left: 50%; transform: translateX(-50%);",
    "bottom-right": "bottom: 30px; right: 10px;",
    "top-left": "top: 10px; left: 50px;",
    "top-right": "top: 10px; right: 10px;",
}


def normalize_color(color: str) -> str:
    """Prefix bare hex codes ('ffffff') with '#'; pass colour names through."""
    color = str(color).strip()
    return f"#{color}" if _HEX.match(color) else color


def color_bar_params(palette: Sequence[str]) -> dict:
    """Thumbnail parameters for a 0..1 colour bar of *palette*."""
    return {
        "bbox": [0, 0, 1, 0.1],
        "dimensions": "100x10",
        "format": "png",
        "min": 0,
        "max": 1,
        "palette": list(palette),
    }


def legend_labels(vis: Mapping) -> tuple:
    """Labels under the bar: min, max / 2 and max."""
    return vis["min"], vis["max"] / 2, vis["max"]


@dataclass
class Legend:
    """Title, visualisation parameters and map position of one legend."""

    title: str
    vis: Mapping
    position: str = "bottom-left"
    font_size: int = 20

    def __post_init__(self) -> None:
        if self.position not in POSITIONS:
            raise ValueError(
                f"Unknown legend position '{self.position}'. Choose from: {POSITIONS}"
            )
        if not self.vis.get("palette"):
            raise ValueError("Legend needs a vis dict with a palette")

    @property
    def colors(self) -> list[str]:
        return [normalize_color(c) for c in self.vis["palette"]]

    def to_png(self, output_path: str, dpi: int = 100) -> str:
        """Render the legend to *output_path* and return the path."""
        cmap = LinearSegmentedColormap.from_list("legend", self.colors)
        vmin, vmid, vmax = legend_labels(self.vis)
        fig, ax = plt.subplots(figsize=(4, 1.0))
        fig.subplots_adjust(left=0.05, right=0.95, top=0.6, bottom=0.35)
        gradient = [[i / 255 for i in range(256)]]
        ax.imshow(gradient, aspect="auto", cmap=cmap, extent=(0, 1, 0, 1))
        ax.set_yticks([])
        ax.set_xticks([0, 0.5, 1])
        ax.set_xticklabels([f"{vmin:g}", f"{vmid:g}", f"{vmax:g}"])
        ax.set_title(
            self.title, fontweight="bold", fontsize=self.font_size / 2.5, wrap=True
        )
        os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
        fig.savefig(output_path, dpi=dpi)
        plt.close(fig)
        return output_path

    def to_html(self) -> str:
        """HTML block placing the legend over a folium map."""
        vmin, vmid, vmax = legend_labels(self.vis)
        gradient = ", ".join(self.colors)
        return (
            f'<div style="position: fixed; {_CSS_POSITIONS[self.position]} '
            'z-index: 9999; width: 400px; background: white; padding: 6px 8px; '
            'font-family: sans-serif; font-size: 12px; '
            'box-shadow: 0 1px 4px rgba(0,0,0,0.3);">'
            f'<div style="font-weight: bold;">{self.title}</div>'
            '<div style="height: 16px; margin: 4px 8px; '
            f'background: linear-gradient(to right, {gradient});"></div>'
            '<div style="display: flex; justify-content: space-between; margin: 0 8px;">'
            f"<span>{vmin:g}</span><span>{vmid:g}</span><span>{vmax:g}</span>"
            "</div></div>"
        )


def legend_horz(
    vis: Mapping,
    title: str = "",
    output_path: str | None = None,
    position: str = "bottom-left",
    font_size: int = 20,
) -> Legend:
    """Build a horizontal legend, writing a PNG when *output_path* is given."""
    legend = Legend(title=title, vis=vis, position=position, font_size=font_size)
    if output_path:
        legend.to_png(output_path)
    return legend
