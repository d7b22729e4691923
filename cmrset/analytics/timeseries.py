"""
Module `analytics.timeseries` provides the TimeSeries class, which wraps a
pandas DataFrame of region-mean band values per image date, and the local
calendar-month aggregation helpers.
"""

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional

import ee
import pandas as pd

from cmrset.core.logger import Logger

log = Logger.get_logger(__name__)


def calendar_month_means_frame(
    df: pd.DataFrame,
    months: Optional[Iterable[int]] = None,
    date_col: str = "date",
    value_cols: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Average rows by calendar month, regardless of year.

    Only rows whose month is in *months* (all months when ``None``) enter
    each bucket. Returns a DataFrame indexed by ``month`` in the order given;
    months without any rows are dropped, as on Earth Engine.
    """
    dates = pd.to_datetime(df[date_col])
    cols = value_cols or [c for c in df.columns if c != date_col]
    month = dates.dt.month.rename("month")
    grouped = df[cols].groupby(month).mean()
    if months is not None:
        grouped = grouped.loc[[m for m in months if m in grouped.index]]
    return grouped


@dataclass
class TimeSeries:
    """Wide DataFrame with a ``date`` column and one column per band."""

    df: pd.DataFrame
    bands: List[str]

    @classmethod
    def from_dataframe(
        cls, df: pd.DataFrame, bands: Optional[List[str]] = None
    ) -> "TimeSeries":
        """
        Create a TimeSeries from a DataFrame with a 'date' column.
        Ensures 'date' is parsed as datetime and rows are sorted by date.
        """
        df_copy = df.copy()
        df_copy["date"] = pd.to_datetime(df_copy["date"])
        df_copy = df_copy.sort_values("date").reset_index(drop=True)
        cols = bands or [c for c in df_copy.columns if c != "date"]
        return cls(df_copy, list(cols))

    @classmethod
    def from_features(cls, info: Mapping, bands: List[str]) -> "TimeSeries":
        """Build from the ``getInfo()`` of a FeatureCollection made by :meth:`reduce_collection`."""
        rows = []
        for feat in info.get("features", []):
            props = feat.get("properties", {})
            row = {"date": props.get("date")}
            for band in bands:
                row[band] = props.get(band)
            rows.append(row)
        df = pd.DataFrame(rows, columns=["date", *bands])
        return cls.from_dataframe(df, bands)

    @staticmethod
    def reduce_collection(
        collection: ee.ImageCollection,
        geometry,
        bands: List[str],
        scale: int = 30,
        reducer=None,
    ) -> ee.FeatureCollection:
        """
        Reduce every image of *collection* over *geometry* to one feature
        holding the band statistics and the image date (``YYYY-MM-dd``).
        """
        reducer = reducer or ee.Reducer.mean()

        def _reduce(img):
            stats = img.reduceRegion(
                reducer=reducer,
                geometry=geometry,
                scale=scale,
                bestEffort=True,
                maxPixels=1e12,
            )
            date = ee.Date(img.get("system:time_start")).format("YYYY-MM-dd")
            return ee.Feature(None, stats).set("date", date)

        return ee.FeatureCollection(collection.select(bands).map(_reduce))

    @classmethod
    def from_collection(
        cls,
        collection: ee.ImageCollection,
        geometry,
        bands: List[str],
        ee_manager,
        scale: int = 30,
        reducer=None,
    ) -> "TimeSeries":
        """Fetch region means for each image via ``ee_manager.safe_get_info``."""
        fc = cls.reduce_collection(collection, geometry, bands, scale, reducer)
        info = ee_manager.safe_get_info(fc)
        ts = cls.from_features(info, bands)
        log.info("Fetched %d dates for %s", len(ts.df), ", ".join(bands))
        return ts

    def rename(self, names: Mapping[str, str]) -> "TimeSeries":
        """Return a copy with band columns renamed (e.g. to chart series names)."""
        df = self.df.rename(columns=dict(names))
        return TimeSeries(df, [names.get(b, b) for b in self.bands])

    def calendar_month_means(self, months: Optional[Iterable[int]] = None) -> pd.DataFrame:
        """Mean of each band per calendar month, pooled across years."""
        return calendar_month_means_frame(self.df, months, value_cols=self.bands)

    def to_long(self) -> pd.DataFrame:
        """Return columns ``date, series, value``."""
        return self.df.melt(
            id_vars="date", value_vars=self.bands, var_name="series", value_name="value"
        )

    def to_csv(self, path: str) -> None:
        """Write the underlying DataFrame to CSV."""
        self.df.to_csv(path, index=False)
