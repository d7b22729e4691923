"""
Module `analytics.join` pairs time-stamped image collections.

By default images are matched on equal ``system:time_start``; pass a
:func:`max_difference` filter to match within a time window instead.
"""

from typing import Callable, Optional

import ee

MILLIS_1D = 86_400_000  # 24 * 3600 * 1000


def filter_time_eq(field: str = "system:time_start") -> ee.Filter:
    """Filter matching images whose *field* values are equal."""
    return ee.Filter.equals(leftField=field, rightField=field)


def max_difference(
    difference: float, field: str = "system:time_start", days: bool = True
) -> ee.Filter:
    """
    Filter matching images whose *field* values differ by at most *difference*.

    With ``days=True`` the difference is given in days and converted to
    milliseconds; otherwise it is used as-is (e.g. 4 for a ``year`` field).
    """
    if days:
        difference = difference * MILLIS_1D
    return ee.Filter.maxDifference(
        difference=difference, leftField=field, rightField=field
    )


def inner_join(
    primary: ee.ImageCollection,
    secondary: ee.ImageCollection,
    join_filter: Optional[ee.Filter] = None,
    join: Optional[ee.Join] = None,
) -> ee.ImageCollection:
    """
    Inner-join two collections and merge each matched pair into one image.

    The merged image carries the primary bands followed by the secondary
    bands, and the primary image's properties.
    """
    join_filter = join_filter or filter_time_eq()
    join = join or ee.Join.inner()
    joined = join.apply(primary, secondary, join_filter)

    def _merge(feature):
        return ee.Image(feature.get("primary")).addBands(feature.get("secondary"))

    return ee.ImageCollection(joined.map(_merge))


def save_best(
    primary: ee.ImageCollection,
    secondary: ee.ImageCollection,
    join_filter: Optional[ee.Filter] = None,
) -> ee.ImageCollection:
    """Attach the bands of the best-matching secondary image to each primary image."""
    join_filter = join_filter or filter_time_eq()
    joined = ee.Join.saveBest("matches", "measure").apply(
        primary, secondary, join_filter
    )

    def _merge(img):
        return ee.Image(img).addBands(img.get("matches")).set("matches", None)

    return ee.ImageCollection(joined.map(_merge))


def img_absdiff(left: ee.Image, right: ee.Image) -> ee.Image:
    """Absolute difference of two images."""
    return ee.Image(left).subtract(right).abs()


def img_diff(left: ee.Image, right: ee.Image) -> ee.Image:
    """Difference of two images."""
    return ee.Image(left).subtract(right)


def img_col_fun(
    primary: ee.ImageCollection,
    secondary: ee.ImageCollection,
    fun: Callable[[ee.Image, ee.Image], ee.Image] = img_absdiff,
    join_filter: Optional[ee.Filter] = None,
) -> ee.ImageCollection:
    """
    Apply ``fun(left, right)`` to each primary image and its best match.

    The result keeps the properties of the primary image.
    """
    join_filter = join_filter or filter_time_eq()
    joined = ee.Join.saveBest("matches", "measure").apply(
        primary, secondary, join_filter
    )

    def _apply(img):
        right = ee.Image(img.get("matches"))
        left = ee.Image(img).set("matches", None)
        return fun(left, right).copyProperties(left, left.propertyNames())

    return ee.ImageCollection(joined.map(_apply))


def resample_to_daily(
    daily: ee.ImageCollection, images: ee.ImageCollection, days: int = 9
) -> ee.ImageCollection:
    """
    Resample an 8- or 4-day collection onto the dates of a daily collection.

    Each daily image receives the nearest image of *images* within *days*;
    only the first band of the match is kept.
    """
    joined = save_best(daily, images, max_difference(days))
    # band 0 is the daily template, band 1 the resampled match
    return joined.select([1])
