"""
Module `ingestion.indices` provides the formula registry and the expression
dispatchers used to add index, crop-coefficient and ETa bands to EE images.

Formulas live in `resources/index_formulas.json` (override the location with
the CMRSET_INDEX_FORMULAS environment variable). Each entry holds an
expression over upper-case tokens, a token -> band mapping, numeric
parameters and optional clamp bounds.
"""

import json
import os
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

import ee

from cmrset.core.logger import Logger

log = Logger.get_logger(__name__)

_FORMULA_PATH = (
    Path(__file__).resolve().parent.parent / "resources" / "index_formulas.json"
)


def load_registry(path: Optional[Union[str, Path]] = None) -> dict:
    """Read a formula registry from *path* (defaults to the bundled JSON)."""
    path = Path(path or os.getenv("CMRSET_INDEX_FORMULAS") or _FORMULA_PATH)
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _build_aliases(registry: dict) -> dict:
    aliases = {}
    for name, formula in registry.items():
        aliases[name.lower()] = name
        for alias in formula.get("aliases", []):
            aliases[alias.lower()] = name
    return aliases


INDEX_REGISTRY = load_registry()
_ALIASES = _build_aliases(INDEX_REGISTRY)


def resolve_name(index: str) -> str:
    """Return the registry key (and output band name) for *index*.

    Lookup is case-insensitive and accepts aliases such as ``rescaled_evi``.
    """
    key = _ALIASES.get(str(index).lower())
    if key is None:
        raise ValueError(
            f"Index '{index}' not supported. Choose from: {list(INDEX_REGISTRY)}"
        )
    return key


def get_formula(index: str) -> dict:
    """Return a copy of the registry entry for *index*, with its ``name``."""
    name = resolve_name(index)
    formula = dict(INDEX_REGISTRY[name])
    formula["name"] = name
    return formula


def required_bands(index: str) -> list[str]:
    """Band names an image must carry before *index* can be computed."""
    return list(get_formula(index)["bands"].values())


def _clamp(img: ee.Image, bounds) -> ee.Image:
    low, high = bounds if bounds else (None, None)
    if low is not None:
        img = img.max(low)
    if high is not None:
        img = img.min(high)
    return img


def compute_index(img: ee.Image, index: str) -> ee.Image:
    """
    Compute a named formula on the given EE Image.

    Args:
        img: ee.Image carrying every band the formula refers to.
        index: a registry key or alias (case-insensitive).

    Returns:
        single-band ee.Image named after the registry key, clamped to the
        formula's bounds.
    """
    formula = get_formula(index)
    token_map = {}
    for token, band in formula["bands"].items():
        token_map[token] = img.select(band)
    for token, value in formula.get("params", {}).items():
        token_map[token] = value
    result = img.expression(formula["expr"], token_map).rename(formula["name"])
    return _clamp(result, formula.get("clamp"))


def mutate(
    names: Union[str, Iterable[str]], include_origin: bool = False
) -> Callable[[ee.Image], ee.Image]:
    """
    Build a function that adds the named formula bands to an image.

    Formulas are evaluated in order against the accumulating image, so a
    formula may consume a band produced earlier in the same call (e.g.
    ``["rescaled_evi", "Kc"]``). With ``include_origin`` the returned image
    keeps its input bands; otherwise only the new bands are kept. Image
    properties are retained either way.
    """
    if isinstance(names, str):
        names = [names]
    canonical = [resolve_name(n) for n in names]
    log.debug("mutate %s (include_origin=%s)", canonical, include_origin)

    def _apply(img):
        out = img
        for name in canonical:
            out = out.addBands(compute_index(out, name), overwrite=True)
        if include_origin:
            return out
        return out.select(canonical)

    return _apply


def transform(
    exprs: Union[str, Iterable[str]],
    func: Optional[Callable[[ee.Image], ee.Image]] = None,
) -> Callable[[ee.Image], ee.Image]:
    """
    Build a function that evaluates free expressions such as
    ``'Kc = b("Kc2") - b("Kc")'`` on an image and stacks the results.

    *func* post-processes the stacked image (e.g. :func:`mask_positive`).
    Every property of the input, ``system:time_start`` included, is copied
    onto the result so later calendar filters and joins still apply.
    """
    if isinstance(exprs, str):
        exprs = [exprs]
    exprs = list(exprs)
    if not exprs:
        raise ValueError("transform() needs at least one expression")

    def _apply(img):
        out = img.expression(exprs[0])
        for expr in exprs[1:]:
            out = out.addBands(img.expression(expr))
        if func is not None:
            out = func(out)
        return ee.Image(out.copyProperties(img, img.propertyNames()))

    return _apply


def mask_positive(img: ee.Image) -> ee.Image:
    """Keep only pixels where the image is greater than zero."""
    return img.updateMask(img.gt(0))
