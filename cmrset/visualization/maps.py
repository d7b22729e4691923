"""Folium maps of Earth Engine layers (the local counterpart of Map.addLayer)."""

import os
from typing import Mapping, Optional, Sequence

import folium
from folium.raster_layers import TileLayer

from cmrset.core.logger import Logger
from .legend import Legend

log = Logger.get_logger(__name__)

EE_ATTRIBUTION = "Map data &copy; Google Earth Engine"


def _add_basemap(m: folium.Map) -> None:
    """Add a basemap TileLayer chosen by the CMRSET_BASEMAP environment variable."""
    provider = os.environ.get("CMRSET_BASEMAP", "osm").lower()
    if provider in ("carto-positron", "carto.light", "carto"):
        url = "https://{s}.basemaps.cartocdn.com/light_all/{z}/{x}/{y}{r}.png"
        attribution = (
            '&copy; <a href="https://carto.com/attributions">CARTO</a> '
            '&copy; <a href="https://www.openstreetmap.org/copyright">OpenStreetMap contributors</a>'
        )
        name = "Carto Positron"
    elif provider in ("esri-satellite", "satellite"):
        url = (
            "https://server.arcgisonline.com/ArcGIS/rest/services/"
            "World_Imagery/MapServer/tile/{z}/{y}/{x}"
        )
        attribution = "Tiles &copy; Esri"
        name = "Esri Satellite"
    else:
        url = "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"
        attribution = '&copy; <a href="https://www.openstreetmap.org/copyright">OpenStreetMap contributors</a>'
        name = "OpenStreetMap"
    TileLayer(
        tiles=url, name=name, attr=attribution, overlay=False, control=False
    ).add_to(m)


def build_map(center: Sequence[float], zoom: int = 11) -> folium.Map:
    """
    Create a map centred on *center* given as ``[lon, lat]`` (Earth Engine order).
    """
    lon, lat = center
    m = folium.Map(location=[lat, lon], zoom_start=zoom, tiles=None)
    _add_basemap(m)
    return m


def ee_tile_url(ee_object, vis: Optional[Mapping] = None) -> str:
    """Tile URL template for an ee.Image or ee.FeatureCollection."""
    map_id = ee_object.getMapId(dict(vis or {}))
    return map_id["tile_fetcher"].url_format


def add_ee_layer(
    m: folium.Map,
    ee_object,
    vis: Optional[Mapping] = None,
    name: str = "",
    shown: bool = True,
    opacity: float = 1.0,
) -> TileLayer:
    """Add an Earth Engine object as a tile overlay, like ``Map.addLayer``."""
    layer = TileLayer(
        tiles=ee_tile_url(ee_object, vis),
        attr=EE_ATTRIBUTION,
        name=name,
        overlay=True,
        control=True,
        show=shown,
        opacity=opacity,
    )
    layer.add_to(m)
    log.debug("Added layer %r", name)
    return layer


def add_legend(m: folium.Map, legend: Legend) -> None:
    """Overlay a legend on the map at its configured position."""
    m.get_root().html.add_child(folium.Element(legend.to_html()))


def save_map(m: folium.Map, output_path: str) -> str:
    """Add a layer control and write the map to an HTML file."""
    folium.LayerControl(position="topright", collapsed=False).add_to(m)
    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    m.save(output_path)
    log.info("Map written to %s", output_path)
    return output_path
