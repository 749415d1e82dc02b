import numpy as np
import sympy as sp
from typing import Callable, Dict, Optional, Sequence, Tuple

from ...config import EngineConfig, get_config
from ...logging_system import get_logger, log_warning


class AutodiffDisabledError(RuntimeError):
  """Raised when a derivative is requested from a table built without derivatives"""


class OperatorIndexError(IndexError):
  """Raised when a node refers to an operator the table does not have"""


_x, _y = sp.symbols('x y', real=True)

# Smooth built-ins are declared once symbolically; values and derivatives
# are both generated from these templates.
BINARY_SYMPY: Dict[str, sp.Expr] = {
  '+': _x + _y,
  '-': _x - _y,
  '*': _x * _y,
  '/': _x / _y,
  '^': _x ** _y,
  'pow': _x ** _y,
}

UNARY_SYMPY: Dict[str, sp.Expr] = {
  'sin': sp.sin(_x),
  'cos': sp.cos(_x),
  'tan': sp.tan(_x),
  'exp': sp.exp(_x),
  'log': sp.log(_x),
  'sqrt': sp.sqrt(_x),
  'abs': sp.Abs(_x),
  'neg': -_x,
  'square': _x ** 2,
  'cube': _x ** 3,
  'inv': 1 / _x,
  'sinh': sp.sinh(_x),
  'cosh': sp.cosh(_x),
  'tanh': sp.tanh(_x),
}


def _max_partials(l, r):
  mask = l >= r
  return mask.astype(np.result_type(l, r)), (~mask).astype(np.result_type(l, r))


def _min_partials(l, r):
  mask = l <= r
  return mask.astype(np.result_type(l, r)), (~mask).astype(np.result_type(l, r))


# Non-smooth built-ins carry hand-written subgradients.
BINARY_EXPLICIT: Dict[str, Tuple[Callable, Callable]] = {
  'max': (np.maximum, _max_partials),
  'min': (np.minimum, _min_partials),
}


def _broadcasting(func: Callable) -> Callable:
  """Wrap a lambdified function so constant results still come back as full arrays."""
  def wrapper(*args):
    dtype = np.result_type(*args)
    shape = np.broadcast(*args).shape
    out = np.asarray(func(*args))
    if out.shape != shape:
      return np.full(shape, out, dtype=dtype)
    return out.astype(dtype) if out.dtype != dtype else out
  return wrapper


def _lambdify_unary(expr: sp.Expr) -> Tuple[Callable, Callable]:
  func = _broadcasting(sp.lambdify(_x, expr, modules='numpy'))
  diff = _broadcasting(sp.lambdify(_x, sp.diff(expr, _x), modules='numpy'))
  return func, diff


def _lambdify_binary(expr: sp.Expr) -> Tuple[Callable, Callable]:
  func = _broadcasting(sp.lambdify((_x, _y), expr, modules='numpy'))
  dl = _broadcasting(sp.lambdify((_x, _y), sp.diff(expr, _x), modules='numpy'))
  dr = _broadcasting(sp.lambdify((_x, _y), sp.diff(expr, _y), modules='numpy'))

  def diff(l, r):
    return dl(l, r), dr(l, r)
  return func, diff


def _numeric_unary_derivative(func: Callable, step: float) -> Callable:
  def diff(x):
    h = step * np.maximum(1.0, np.abs(x))
    return (func(x + h) - func(x - h)) / (2 * h)
  return diff


def _numeric_binary_derivative(func: Callable, step: float) -> Callable:
  def diff(l, r):
    hl = step * np.maximum(1.0, np.abs(l))
    hr = step * np.maximum(1.0, np.abs(r))
    dl = (func(l + hl, r) - func(l - hl, r)) / (2 * hl)
    dr = (func(l, r + hr) - func(l, r - hr)) / (2 * hr)
    return dl, dr
  return diff


class OperatorTable:
  """Read-only registry of unary/binary operators and, optionally, their derivatives.

  Operators are addressed with 1-based indices, matching the ``op`` field of
  tree nodes. Every function works on whole numpy arrays; a binary derivative
  returns the pair ``(d/dleft, d/dright)``.
  """

  __slots__ = ('binops', 'unaops', 'diff_binops', 'diff_unaops',
               'binop_names', 'unaop_names', 'binop_templates', 'unaop_templates')

  def __init__(self, binops: Sequence[Callable], unaops: Sequence[Callable],
               diff_binops: Optional[Sequence[Callable]] = None,
               diff_unaops: Optional[Sequence[Callable]] = None,
               binop_names: Optional[Sequence[str]] = None,
               unaop_names: Optional[Sequence[str]] = None,
               binop_templates: Optional[Sequence[Optional[sp.Expr]]] = None,
               unaop_templates: Optional[Sequence[Optional[sp.Expr]]] = None):
    self.binops = tuple(binops)
    self.unaops = tuple(unaops)
    self.diff_binops = tuple(diff_binops) if diff_binops is not None else None
    self.diff_unaops = tuple(diff_unaops) if diff_unaops is not None else None
    if self.diff_binops is not None and len(self.diff_binops) != len(self.binops):
      raise ValueError("diff_binops must have one entry per binary operator")
    if self.diff_unaops is not None and len(self.diff_unaops) != len(self.unaops):
      raise ValueError("diff_unaops must have one entry per unary operator")
    self.binop_names = tuple(binop_names) if binop_names is not None else tuple(
      getattr(f, '__name__', f'binop{i + 1}') for i, f in enumerate(self.binops))
    self.unaop_names = tuple(unaop_names) if unaop_names is not None else tuple(
      getattr(f, '__name__', f'unaop{i + 1}') for i, f in enumerate(self.unaops))
    self.binop_templates = tuple(binop_templates) if binop_templates is not None else (None,) * len(self.binops)
    self.unaop_templates = tuple(unaop_templates) if unaop_templates is not None else (None,) * len(self.unaops)

  @property
  def enable_autodiff(self) -> bool:
    return self.diff_binops is not None or self.diff_unaops is not None

  def require_autodiff(self):
    if not self.enable_autodiff:
      raise AutodiffDisabledError(
        "Operator table has no derivative functions; build it with enable_autodiff=True")

  @staticmethod
  def _lookup(seq: Optional[Tuple], op: int, kind: str):
    if seq is None:
      raise AutodiffDisabledError(f"Operator table has no {kind} derivative functions")
    if not 1 <= op <= len(seq):
      raise OperatorIndexError(f"{kind} operator index {op} out of range 1..{len(seq)}")
    return seq[op - 1]

  def get_binop(self, op: int) -> Callable:
    return self._lookup(self.binops, op, 'binary')

  def get_unaop(self, op: int) -> Callable:
    return self._lookup(self.unaops, op, 'unary')

  def get_diff_binop(self, op: int) -> Callable:
    return self._lookup(self.diff_binops, op, 'binary')

  def get_diff_unaop(self, op: int) -> Callable:
    return self._lookup(self.diff_unaops, op, 'unary')

  def find_binop(self, name: str) -> Optional[int]:
    """1-based index of the binary operator called ``name``, or None"""
    if name in self.binop_names:
      return self.binop_names.index(name) + 1
    return None

  def find_unaop(self, name: str) -> Optional[int]:
    if name in self.unaop_names:
      return self.unaop_names.index(name) + 1
    return None

  def __repr__(self) -> str:
    return (f"OperatorTable(binary={list(self.binop_names)}, unary={list(self.unaop_names)}, "
            f"autodiff={self.enable_autodiff})")


def _resolve(entry, registry_sympy: Dict[str, sp.Expr], explicit: Dict[str, Tuple[Callable, Callable]],
             binary: bool, config: EngineConfig):
  """Turn a builder entry into (name, func, derivative-or-None, sympy template-or-None)."""
  if isinstance(entry, str):
    if entry in registry_sympy:
      expr = registry_sympy[entry]
      func, diff = _lambdify_binary(expr) if binary else _lambdify_unary(expr)
      return entry, func, diff, expr
    if entry in explicit:
      func, diff = explicit[entry]
      return entry, func, diff, None
    kind = 'binary' if binary else 'unary'
    raise ValueError(f"Unknown {kind} operator '{entry}'")

  if not isinstance(entry, (tuple, list)) or len(entry) not in (2, 3):
    raise ValueError(f"Operator entry must be a name, (name, func) or (name, func, derivative): {entry!r}")

  name, func = entry[0], entry[1]
  diff = entry[2] if len(entry) == 3 else None
  if diff is None and config.allow_numeric_derivatives:
    if binary:
      diff = _numeric_binary_derivative(func, config.finite_difference_step)
    else:
      diff = _numeric_unary_derivative(func, config.finite_difference_step)
  return name, func, diff, None


def _derivative_is_usable(diff: Optional[Callable], binary: bool, config: EngineConfig) -> bool:
  """Probe a derivative over the validation domain; non-finite values are acceptable."""
  if diff is None:
    return False
  grid = np.linspace(config.domain_low, config.domain_high, config.domain_points)
  try:
    with np.errstate(all='ignore'):
      if binary:
        xx, yy = np.meshgrid(grid, grid)
        l, r = xx.ravel(), yy.ravel()
        out = diff(l, r)
        if len(out) != 2:
          return False
        return all(np.shape(part) == l.shape for part in out)
      out = diff(grid)
      return np.shape(out) == grid.shape
  except Exception as exc:
    log_warning(f"Derivative probe raised {type(exc).__name__}: {exc}")
    return False


_bound_operators: Optional[OperatorTable] = None


def bind_node_operators(operators: Optional[OperatorTable]) -> Optional[OperatorTable]:
  """Make ``operators`` the table used by node arithmetic (``x1 * 3.2``)"""
  global _bound_operators
  _bound_operators = operators
  return operators


def get_bound_operators() -> Optional[OperatorTable]:
  return _bound_operators


def build_operator_table(binary_operators: Sequence = ('+', '-', '/', '*'),
                         unary_operators: Sequence = (),
                         enable_autodiff: bool = False,
                         config: Optional[EngineConfig] = None,
                         define_helper_functions: bool = True) -> OperatorTable:
  """Build an :class:`OperatorTable` from operator names and/or custom callables.

  Each entry is a built-in name (``'+'``, ``'sin'``, ...), a ``(name, func)``
  pair or a ``(name, func, derivative)`` triple. With ``enable_autodiff`` every
  derivative is probed over ``config``'s sample domain; if any operator lacks a
  usable derivative, autodiff is turned off for the whole table.

  With ``define_helper_functions`` the new table is bound to node arithmetic,
  so ``(x1 + 2.0) * x2`` builds a tree against it.
  """
  config = config or get_config()

  binaries = [_resolve(e, BINARY_SYMPY, BINARY_EXPLICIT, True, config) for e in binary_operators]
  unaries = [_resolve(e, UNARY_SYMPY, {}, False, config) for e in unary_operators]

  if enable_autodiff:
    for name, _, diff, _ in binaries:
      if not _derivative_is_usable(diff, True, config):
        log_warning(f"Automatic differentiation has been turned off, since operator {name} "
                    "does not have well-defined gradients.")
        enable_autodiff = False
        break
  if enable_autodiff:
    for name, _, diff, _ in unaries:
      if not _derivative_is_usable(diff, False, config):
        log_warning(f"Automatic differentiation has been turned off, since operator {name} "
                    "does not have well-defined gradients.")
        enable_autodiff = False
        break

  table = OperatorTable(
    binops=[b[1] for b in binaries],
    unaops=[u[1] for u in unaries],
    diff_binops=[b[2] for b in binaries] if enable_autodiff else None,
    diff_unaops=[u[2] for u in unaries] if enable_autodiff else None,
    binop_names=[b[0] for b in binaries],
    unaop_names=[u[0] for u in unaries],
    binop_templates=[b[3] for b in binaries],
    unaop_templates=[u[3] for u in unaries],
  )
  get_logger().table_summary(len(table.binops), len(table.unaops), table.enable_autodiff)
  if define_helper_functions:
    bind_node_operators(table)
  return table
