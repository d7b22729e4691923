"""
Module `geo.aoi` defines the AOI (Area of Interest) class, which holds a single
geographic feature (Polygon/MultiPolygon) and its static properties, plus
helpers for the Earth Engine regions used by the experiment.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Union

import geopandas as gpd
import ee
from shapely.geometry import MultiPolygon, Polygon, box, mapping, shape


@dataclass
class AOI:
    """Area of Interest with static properties."""

    geometry: Union[Polygon, MultiPolygon]
    static_props: Dict[str, Any]

    @classmethod
    def from_file(cls, path: str, id_col: str = "id") -> List["AOI"]:
        """
        Load a vector file (GeoJSON, Shapefile, etc.) into AOI instances.
        """
        gdf = gpd.read_file(path)
        if gdf.crs is not None and gdf.crs.to_epsg() != 4326:
            gdf = gdf.to_crs(epsg=4326)
        return cls.from_gdf(gdf, id_col)

    @classmethod
    def from_geojson(cls, geojson: Union[str, dict], id_col: str = "id") -> List["AOI"]:
        """
        Parse a GeoJSON object (or path to a GeoJSON file) and return AOI instances.
        """
        if isinstance(geojson, str):
            with open(geojson, "r", encoding="utf-8") as f:
                data = json.load(f)
        else:
            data = geojson
        features = data.get("features", [])
        gdf = gpd.GeoDataFrame(
            [
                {**feat.get("properties", {}), "geometry": shape(feat["geometry"])}
                for feat in features
            ],
            geometry="geometry",
            crs="EPSG:4326",
        )
        return cls.from_gdf(gdf, id_col)

    @classmethod
    def from_gdf(cls, gdf: gpd.GeoDataFrame, id_col: str = "id") -> List["AOI"]:
        """
        Build AOI instances from a GeoDataFrame, numbering rows from 1 when
        *id_col* is missing.
        """
        if id_col not in gdf.columns:
            gdf = gdf.copy()
            gdf[id_col] = gdf.index.astype(int) + 1
        aois: List[AOI] = []
        for _, row in gdf.iterrows():
            props: Dict = row.drop(labels="geometry").to_dict()
            aois.append(cls(row.geometry, props))
        return aois

    @classmethod
    def from_bounds(cls, bounds: Sequence[float], **props) -> "AOI":
        """AOI for a ``[west, south, east, north]`` rectangle."""
        west, south, east, north = bounds
        if west >= east or south >= north:
            raise ValueError(f"Invalid bounds {list(bounds)}")
        return cls(box(west, south, east, north), dict(props))

    @property
    def bounds(self) -> tuple:
        return self.geometry.bounds

    def ee_geometry(self) -> ee.Geometry:
        """
        Return an Earth Engine Geometry corresponding to this AOI's Shapely geometry.
        """
        return ee.Geometry(mapping(self.geometry))


def rectangle(bounds: Sequence[float]) -> ee.Geometry:
    """Earth Engine rectangle for ``[west, south, east, north]``."""
    return ee.Geometry.Rectangle(list(bounds))


def district_from_asset(
    asset_id: str, id_field: str = "Id", id_value: Any = 2
) -> ee.FeatureCollection:
    """Irrigation district polygons from a table asset, filtered on *id_field*."""
    return ee.FeatureCollection(asset_id).filter(ee.Filter.eq(id_field, id_value))
