# analytics/engine.py

"""
AnalyticsEngine
---------------
Reusable EE routines for temporal aggregation: periodic composites from a
start date, and calendar-month means pooled across years.
"""
from typing import Iterable, List, Optional

import ee
from ee import Reducer


class AnalyticsEngine:
    """
    Collection of static methods for common Earth Engine aggregation operations.
    """

    @staticmethod
    def build_composites(
        base_ic: ee.ImageCollection,
        start: str,
        count: int,
        bands: List[str],
        period: str = "M",
        reducer: Optional[Reducer] = None,
    ) -> ee.ImageCollection:
        """
        Build *count* consecutive monthly ('M') or yearly ('Y') composites of
        *bands*, the first window starting at *start*.

        Each composite carries ``system:time_start`` (window start in millis),
        ``system:index`` (``YYYYMM``) and ``n_images``; windows without
        images are dropped.
        """
        unit = "month" if period == "M" else "year"
        start_dt = ee.Date(start)

        def make_periodic_image(offset):
            window_start = start_dt.advance(offset, unit)
            window_end = window_start.advance(1, unit)
            window = base_ic.filterDate(window_start, window_end).select(bands)
            if reducer is None:
                composite = window.mean()
            else:
                composite = window.reduce(reducer).rename(bands)
            return (
                composite.set("system:time_start", window_start.millis())
                .set("system:index", window_start.format("YYYYMM"))
                .set("n_images", window.size())
            )

        offsets = ee.List.sequence(0, count - 1)
        composites = ee.ImageCollection.fromImages(offsets.map(make_periodic_image))
        return composites.filter(ee.Filter.gt("n_images", 0))

    @staticmethod
    def monthly_means(
        base_ic: ee.ImageCollection, start: str, n_months: int, bands: List[str]
    ) -> ee.ImageCollection:
        """Mean image per month for *n_months* months from *start*."""
        return AnalyticsEngine.build_composites(base_ic, start, n_months, bands, "M")

    @staticmethod
    def calendar_month_means(
        base_ic: ee.ImageCollection, months: Iterable[int]
    ) -> ee.ImageCollection:
        """
        One mean image per calendar month in *months*, pooling all years.

        Each image carries ``month`` and ``n_images`` properties; months
        without images are dropped.
        """

        def month_mean(m):
            window = base_ic.filter(ee.Filter.calendarRange(m, m, "month"))
            return window.mean().set("month", m).set("n_images", window.size())

        images = [month_mean(m) for m in months]
        return ee.ImageCollection.fromImages(images).filter(
            ee.Filter.gt("n_images", 0)
        )
