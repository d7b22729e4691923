"""
Module `analytics.expression` evaluates registry formulas locally on numpy
arrays, scalars or pandas columns.

It accepts the same expression language the formulas use on Earth Engine
(``Image.expression``): numbers, upper-case tokens, ``b('band')``,
``+ - * / **``, unary minus and a handful of functions. Expressions are
parsed with :mod:`ast` and walked node by node; nothing is passed to
``eval``.
"""

import ast
import operator
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from cmrset.core.logger import Logger
from cmrset.ingestion.indices import get_formula, resolve_name

log = Logger.get_logger(__name__)

ArrayLike = Union[np.ndarray, pd.Series, float]


class ExpressionError(ValueError):
    """Raised when an expression uses unsupported syntax or unknown names."""


def _divide(left, right):
    """Divide like ``Image.divide``: 0 wherever the denominator is 0."""
    num = np.asarray(left, dtype=float)
    den = np.asarray(right, dtype=float)
    # NaN marks a masked pixel and stays masked
    out = np.where(np.isnan(num + den), np.nan, 0.0)
    np.divide(num, den, out=out, where=den != 0)
    for operand in (left, right):
        if isinstance(operand, pd.Series):
            return pd.Series(out, index=operand.index)
    return out if out.ndim else float(out)


_BINOPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: _divide,
    ast.Pow: np.power,
}

_UNARYOPS = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

_FUNCTIONS = {
    "exp": np.exp,
    "log": np.log,
    "sqrt": np.sqrt,
    "abs": np.abs,
    "min": np.minimum,
    "max": np.maximum,
}


def _parse(expr: str) -> Tuple[Optional[str], ast.AST]:
    """Split ``"NAME = expr"`` into the output name and the expression tree."""
    try:
        tree = ast.parse(expr.strip(), mode="exec")
    except SyntaxError as e:
        raise ExpressionError(f"Cannot parse expression {expr!r}: {e.msg}") from e
    if len(tree.body) != 1:
        raise ExpressionError(f"Expected a single expression, got {expr!r}")
    stmt = tree.body[0]
    if isinstance(stmt, ast.Assign):
        if len(stmt.targets) != 1 or not isinstance(stmt.targets[0], ast.Name):
            raise ExpressionError(f"Invalid assignment in {expr!r}")
        return stmt.targets[0].id, stmt.value
    if isinstance(stmt, ast.Expr):
        return None, stmt.value
    raise ExpressionError(f"Unsupported statement in {expr!r}")


class _Evaluator:
    def __init__(self, tokens: Mapping[str, Any], bands: Mapping[str, Any]):
        self.tokens = tokens
        self.bands = bands

    def visit(self, node: ast.AST):
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
            return node.value
        if isinstance(node, ast.Name):
            if node.id not in self.tokens:
                raise ExpressionError(f"Unknown token '{node.id}'")
            return self.tokens[node.id]
        if isinstance(node, ast.BinOp) and type(node.op) in _BINOPS:
            return _BINOPS[type(node.op)](self.visit(node.left), self.visit(node.right))
        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARYOPS:
            return _UNARYOPS[type(node.op)](self.visit(node.operand))
        if isinstance(node, ast.Call) and isinstance(node.func, ast.Name):
            return self._call(node)
        raise ExpressionError(f"Unsupported syntax: {ast.dump(node)}")

    def _call(self, node: ast.Call):
        fname = node.func.id
        if node.keywords:
            raise ExpressionError(f"Keyword arguments are not supported in {fname}()")
        if fname == "b":
            if len(node.args) != 1 or not isinstance(node.args[0], ast.Constant):
                raise ExpressionError("b() takes a single band name")
            band = node.args[0].value
            if band not in self.bands:
                raise ExpressionError(f"Unknown band '{band}'")
            return self.bands[band]
        if fname not in _FUNCTIONS:
            raise ExpressionError(f"Unknown function '{fname}'")
        return _FUNCTIONS[fname](*(self.visit(arg) for arg in node.args))


def evaluate_expression(
    expr: str,
    tokens: Optional[Mapping[str, Any]] = None,
    bands: Optional[Mapping[str, Any]] = None,
) -> Tuple[Optional[str], Any]:
    """
    Evaluate *expr* with the given token values and ``b()`` band lookup.

    Returns ``(name, value)`` where *name* is the assignment target of a
    ``"NAME = expr"`` expression, or ``None``.
    """
    name, tree = _parse(expr)
    with np.errstate(divide="ignore", invalid="ignore"):
        value = _Evaluator(tokens or {}, bands or {}).visit(tree)
    return name, value


def _apply_clamp(value, bounds):
    low, high = bounds if bounds else (None, None)
    if low is not None:
        value = np.maximum(value, low)
    if high is not None:
        value = np.minimum(value, high)
    return value


def evaluate_formula(index: str, bands: Mapping[str, ArrayLike]) -> ArrayLike:
    """
    Evaluate the registry formula *index* on band values.

    *bands* maps band names (``"nir"``, ``"EVI"``, ``"total_precipitation"``...)
    to numbers, numpy arrays or pandas Series. Division by zero gives 0 and the
    result is clamped, as on Earth Engine; NaN inputs stay NaN. Missing
    bands raise :class:`ExpressionError`.

    >>> round(float(evaluate_formula("GVMI", {"nir": 0.30, "swir1": 0.10})), 4)
    0.5385
    """
    formula = get_formula(index)
    tokens = dict(formula.get("params", {}))
    for token, band in formula["bands"].items():
        if band not in bands:
            raise ExpressionError(
                f"{formula['name']} needs band '{band}' (have: {sorted(bands)})"
            )
        tokens[token] = bands[band]
    _, value = evaluate_expression(formula["expr"], tokens)
    return _apply_clamp(value, formula.get("clamp"))


def mutate_frame(
    df: pd.DataFrame, names: Union[str, Sequence[str]], include_origin: bool = True
) -> pd.DataFrame:
    """
    Add formula columns to a DataFrame of band values, in order.

    Mirrors :func:`cmrset.ingestion.indices.mutate`: each formula sees the
    columns produced before it. With ``include_origin=False`` only the new
    columns are returned (the index is kept).
    """
    if isinstance(names, str):
        names = [names]
    canonical = [resolve_name(n) for n in names]
    out = df.copy()
    for name in canonical:
        out[name] = evaluate_formula(name, out)
    log.debug("Evaluated %d formulas on %d rows", len(canonical), len(out))
    if include_origin:
        return out
    return out[canonical]


def transform_frame(df: pd.DataFrame, exprs: Union[str, Sequence[str]]) -> pd.DataFrame:
    """Evaluate ``"NAME = expr"`` expressions over DataFrame columns."""
    if isinstance(exprs, str):
        exprs = [exprs]
    columns = {}
    for i, expr in enumerate(exprs):
        name, value = evaluate_expression(expr, bands=df)
        columns[name or f"expr_{i}"] = value
    return pd.DataFrame(columns, index=df.index)
