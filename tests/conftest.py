# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring,invalid-name,unused-argument,redefined-outer-name,protected-access
from types import SimpleNamespace

import numpy as np
import pandas as pd
import pytest
import ee

from cmrset.analytics.expression import evaluate_expression


def millis(date) -> int:
    """Epoch milliseconds of a date string or Timestamp."""
    return int(pd.Timestamp(date).value // 10**6)


class FakeDate:
    """ee.Date over a pandas Timestamp."""

    def __init__(self, value):
        if isinstance(value, FakeDate):
            value = value.ts
        if isinstance(value, (int, np.integer)):
            value = pd.Timestamp(int(value), unit="ms")
        self.ts = pd.Timestamp(value)

    def advance(self, delta, unit):
        delta = int(delta)
        if unit == "month":
            return FakeDate(self.ts + pd.DateOffset(months=delta))
        if unit == "year":
            return FakeDate(self.ts + pd.DateOffset(years=delta))
        return FakeDate(self.ts + pd.DateOffset(days=delta))

    def millis(self):
        return millis(self.ts)

    def format(self, fmt):
        pattern = fmt.replace("YYYY", "%Y").replace("MM", "%m").replace("dd", "%d")
        return self.ts.strftime(pattern)


class FakeImage:
    """
    Numpy-backed stand-in for ee.Image.

    Each band is a 1-d float array of pixels; masked pixels are NaN.
    ``expression`` runs through the local evaluator so formulas can be
    checked numerically.
    """

    def __init__(self, bands=None, props=None):
        self.bands = {
            k: np.atleast_1d(np.asarray(v, dtype=float)) for k, v in (bands or {}).items()
        }
        self.props = dict(props or {})

    def __repr__(self):
        return f"FakeImage({list(self.bands)})"

    # helpers
    def _only(self):
        assert len(self.bands) == 1, f"expected a single band, got {list(self.bands)}"
        return next(iter(self.bands.values()))

    @staticmethod
    def _value(other):
        return other._only() if isinstance(other, FakeImage) else other

    def _map(self, fn, keep_props=False):
        with np.errstate(divide="ignore", invalid="ignore"):
            bands = {k: fn(v) for k, v in self.bands.items()}
        return FakeImage(bands, self.props if keep_props else None)

    def _compare(self, other, op):
        value = self._value(other)

        def _cmp(v):
            return np.where(np.isnan(v), np.nan, op(v, value).astype(float))

        return self._map(_cmp)

    # band handling
    def select(self, selectors, new_names=None):
        if isinstance(selectors, (str, int)):
            selectors = [selectors]
        names = list(self.bands)
        picked = [names[s] if isinstance(s, int) else s for s in selectors]
        for name in picked:
            if name not in self.bands:
                raise KeyError(f"band {name!r} not in {names}")
        if isinstance(new_names, str):
            new_names = [new_names]
        out_names = list(new_names) if new_names else picked
        return FakeImage(
            {n: self.bands[p] for p, n in zip(picked, out_names)}, self.props
        )

    def rename(self, names):
        if isinstance(names, str):
            names = [names]
        return FakeImage(dict(zip(names, self.bands.values())), self.props)

    def addBands(self, other, names=None, overwrite=False):
        bands = dict(self.bands)
        for name, values in other.bands.items():
            if name in bands and not overwrite:
                name = f"{name}_1"
            bands[name] = values
        return FakeImage(bands, self.props)

    def bandNames(self):
        return list(self.bands)

    # pixel maths
    def expression(self, expr, tokens=None):
        values = {k: self._value(v) for k, v in (tokens or {}).items()}
        name, value = evaluate_expression(expr, values, self.bands)
        size = len(next(iter(self.bands.values()))) if self.bands else 1
        value = np.broadcast_to(np.asarray(value, dtype=float), (size,)).copy()
        return FakeImage({name or "constant": value})

    def multiply(self, other):
        value = self._value(other)
        return self._map(lambda v: v * value)

    def add(self, other):
        value = self._value(other)
        return self._map(lambda v: v + value)

    def subtract(self, other):
        value = self._value(other)
        return self._map(lambda v: v - value)

    def abs(self):
        return self._map(np.abs)

    def max(self, other):
        value = self._value(other)
        return self._map(lambda v: np.maximum(v, value), keep_props=True)

    def min(self, other):
        value = self._value(other)
        return self._map(lambda v: np.minimum(v, value), keep_props=True)

    def gt(self, other):
        return self._compare(other, np.greater)

    def eq(self, other):
        return self._compare(other, np.equal)

    def bitwiseAnd(self, bits):
        def _and(v):
            ints = np.nan_to_num(v).astype(int)
            return np.where(np.isnan(v), np.nan, np.bitwise_and(ints, bits))

        return self._map(_and)

    def And(self, other):
        value = self._value(other)
        return self._map(lambda v: ((v != 0) & (value != 0)).astype(float))

    def updateMask(self, mask):
        masks = list(mask.bands.values())
        bands = {}
        for i, (name, values) in enumerate(self.bands.items()):
            m = masks[0] if len(masks) == 1 else masks[i]
            keep = np.nan_to_num(m, nan=0.0) != 0
            bands[name] = np.where(keep, values, np.nan)
        return FakeImage(bands, self.props)

    # properties
    def set(self, key, value=None):
        props = dict(self.props)
        props[key] = value
        return FakeImage(self.bands, props)

    def get(self, key):
        return self.props.get(key)

    def propertyNames(self):
        return list(self.props)

    def copyProperties(self, source, properties=None):
        props = dict(self.props)
        for key in properties or source.props:
            if key in source.props:
                props[key] = source.props[key]
        return FakeImage(self.bands, props)

    # server-side reductions
    def reduceRegion(self, reducer=None, geometry=None, scale=None, **kwargs):
        with np.errstate(all="ignore"):
            return {
                k: (float(np.nanmean(v)) if np.any(~np.isnan(v)) else None)
                for k, v in self.bands.items()
            }

    def getMapId(self, vis=None):
        self.props["_vis"] = dict(vis or {})
        return {"tile_fetcher": SimpleNamespace(url_format="https://ee.test/{z}/{x}/{y}")}


class FakeFeature:
    def __init__(self, geometry=None, props=None):
        self.geometry_ = geometry
        self.props = dict(props or {})

    def set(self, key, value=None):
        props = dict(self.props)
        props[key] = value
        return FakeFeature(self.geometry_, props)

    def get(self, key):
        return self.props.get(key)

    def geometry(self):
        return self.geometry_


class FakeGeometry:
    def __init__(self, geojson=None):
        self.geojson = geojson

    @staticmethod
    def Rectangle(coords):
        return FakeGeometry({"type": "Rectangle", "coordinates": list(coords)})


class FakeFilter:
    """Predicate over one element, or over a (primary, secondary) pair."""

    def __init__(self, predicate, pair=False):
        self.predicate = predicate
        self.pair = pair

    @staticmethod
    def gt(name, value):
        return FakeFilter(lambda x: x.props.get(name) > value)

    @staticmethod
    def eq(name, value):
        return FakeFilter(lambda x: x.props.get(name) == value)

    @staticmethod
    def calendarRange(start, end, field="month"):
        def _in_range(x):
            month = FakeDate(x.props["system:time_start"]).ts.month
            if start <= end:
                return start <= month <= end
            return month >= start or month <= end

        return FakeFilter(_in_range)

    @staticmethod
    def equals(leftField=None, rightField=None):
        return FakeFilter(
            lambda a, b: a.props.get(leftField) == b.props.get(rightField), pair=True
        )

    @staticmethod
    def maxDifference(difference=None, leftField=None, rightField=None):
        return FakeFilter(
            lambda a, b: abs(a.props[leftField] - b.props[rightField]) <= difference,
            pair=True,
        )


class FakeCollection:
    """ImageCollection / FeatureCollection stand-in holding a Python list."""

    def __init__(self, items=None):
        self.items = list(items or [])

    def __len__(self):
        return len(self.items)

    def map(self, fn):
        return FakeCollection(fn(item) for item in self.items)

    def filter(self, flt):
        return FakeCollection(i for i in self.items if flt.predicate(i))

    def filterDate(self, start, end):
        lo, hi = millis(FakeDate(start).ts), millis(FakeDate(end).ts)
        return FakeCollection(
            i for i in self.items if lo <= i.props["system:time_start"] < hi
        )

    def filterBounds(self, region):
        return self

    def select(self, *args):
        return self.map(lambda img: img.select(*args))

    def size(self):
        return len(self.items)

    def first(self):
        return self.items[0]

    def mean(self):
        if not self.items:
            return FakeImage()
        bands = {}
        with np.errstate(all="ignore"):
            for name in self.items[0].bands:
                stack = np.vstack([img.bands[name] for img in self.items])
                valid = ~np.isnan(stack)
                total = np.where(valid, stack, 0.0).sum(axis=0)
                count = valid.sum(axis=0)
                bands[name] = np.where(count > 0, total / np.maximum(count, 1), np.nan)
        return FakeImage(bands)

    def geometry(self):
        return FakeGeometry({"type": "Union", "n": len(self.items)})

    def getInfo(self):
        return {
            "type": "FeatureCollection",
            "features": [{"type": "Feature", "properties": i.props} for i in self.items],
        }

    def getMapId(self, vis=None):
        self.vis = dict(vis or {})
        return {"tile_fetcher": SimpleNamespace(url_format="https://ee.test/fc/{z}/{x}/{y}")}


class FakeJoin:
    def __init__(self, kind, match_key=None):
        self.kind = kind
        self.match_key = match_key

    @staticmethod
    def inner():
        return FakeJoin("inner")

    @staticmethod
    def saveBest(matchKey, measureKey):
        return FakeJoin("best", matchKey)

    def apply(self, primary, secondary, condition):
        out = []
        for p in primary.items:
            matches = [s for s in secondary.items if condition.predicate(p, s)]
            if self.kind == "inner":
                out.extend(FakeFeature(None, {"primary": p, "secondary": s}) for s in matches)
            elif matches:
                out.append(p.set(self.match_key, matches[0]))
        return FakeCollection(out)


class FakeList:
    def __init__(self, values):
        self.values = list(values)

    @staticmethod
    def sequence(start, end):
        return FakeList(range(int(start), int(end) + 1))

    def map(self, fn):
        return [fn(v) for v in self.values]


class FakeImageCollectionFactory:
    def __init__(self, catalog):
        self.catalog = catalog

    def __call__(self, arg=None):
        if isinstance(arg, str):
            return self.catalog[arg]
        if isinstance(arg, FakeCollection):
            return arg
        return FakeCollection(arg)

    @staticmethod
    def fromImages(images):
        return FakeCollection(images)


def _fake_image(arg=None):
    if isinstance(arg, FakeImage):
        return arg
    return FakeImage({"constant": arg if arg is not None else 0.0})


@pytest.fixture
def fake_ee(monkeypatch):
    """
    Replace the Earth Engine object model with numpy-backed fakes.

    Collections requested by id are looked up in ``fake_ee.catalog``.
    """
    catalog = {}
    ic_factory = FakeImageCollectionFactory(catalog)
    monkeypatch.setattr(ee, "Image", _fake_image)
    monkeypatch.setattr(ee, "ImageCollection", ic_factory)
    monkeypatch.setattr(ee, "FeatureCollection", ic_factory)
    monkeypatch.setattr(ee, "Feature", FakeFeature)
    monkeypatch.setattr(ee, "Geometry", FakeGeometry)
    monkeypatch.setattr(ee, "Filter", FakeFilter)
    monkeypatch.setattr(ee, "Join", FakeJoin)
    monkeypatch.setattr(ee, "List", FakeList)
    monkeypatch.setattr(ee, "Date", FakeDate)
    monkeypatch.setattr(ee, "Reducer", SimpleNamespace(mean=lambda: "mean"))
    return SimpleNamespace(catalog=catalog)


def dated_image(date, **bands):
    """FakeImage with ``system:time_start`` set from *date*."""
    return FakeImage(bands, {"system:time_start": millis(date)})


@pytest.fixture
def landsat_raw():
    """
    Two Landsat 8 SR scenes in raw digital numbers, three pixels each:
    clear vegetation, a QA-flagged cloud and a bright cloud missed by QA.
    """

    def _scene(date, nir):
        return dated_image(
            date,
            B1=[200, 200, 2800],
            B2=[300, 300, 3000],
            B3=[600, 600, 3000],
            B4=[500, 500, 3000],
            B5=[nir, nir, 4000],
            B6=[1000, 1000, 3000],
            B7=[500, 500, 2500],
            B10=[2950, 2950, 2800],
            B11=[2940, 2940, 2790],
            sr_aerosol=[8, 8, 8],
            pixel_qa=[322, 352, 322],
            radsat_qa=[0, 0, 0],
        )

    return FakeCollection(
        [_scene("2015-01-10", 3000), _scene("2015-01-26", 3200)]
    )


@pytest.fixture(autouse=True)
def no_ee_init(monkeypatch):
    """Prevent tests from contacting Earth Engine."""
    monkeypatch.setattr(ee, "Initialize", lambda *a, **k: None)
    monkeypatch.setattr(ee, "Authenticate", lambda *a, **k: None)

