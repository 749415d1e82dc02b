import numpy as np
import numba
from typing import Tuple

from ..core.node import Node
from ..core.operators import OperatorTable
from ..utils.tree_utils import tree_dtype, convert_tree
from ..utils.validator import ExpressionValidator
from ...logging_system import log_warning, log_debug


@numba.njit(cache=True)
def _has_non_finite(flat):
  for i in range(flat.shape[0]):
    if not np.isfinite(flat[i]):
      return True
  return False


@numba.njit(cache=True)
def evaluate_feature(X, feature):
  return X[feature - 1].copy()


def evaluate_constant(n_samples: int, value) -> np.ndarray:
  return np.full(n_samples, value, dtype=type(value))


def is_bad_array(arr: np.ndarray) -> bool:
  """True if any entry is NaN or infinite"""
  return _has_non_finite(np.ascontiguousarray(arr).reshape(-1))


def promote_inputs(tree: Node, X, caller: str) -> Tuple[Node, np.ndarray]:
  """Bring tree constants and samples to one floating precision.

  A precision mismatch between the two is a performance problem, not an
  error: both sides are widened to the common type and a warning is logged.
  The jitted kernels only handle single and double precision, so half
  precision is widened to float32 and extended precision narrowed to float64.
  """
  X = np.asarray(X)
  t_dtype = tree_dtype(tree)
  common = X.dtype if t_dtype is None else np.result_type(t_dtype, X.dtype)
  if not np.issubdtype(common, np.floating):
    common = np.result_type(common, np.float64)
  if common.itemsize < 4:
    common = np.dtype(np.float32)
  elif common.itemsize > 8:
    log_warning(f"{caller} does not support {common}; computing in float64.")
    common = np.dtype(np.float64)

  if t_dtype is not None and t_dtype != X.dtype:
    log_warning(f"{caller} received mixed types: tree={t_dtype} and data={X.dtype}; "
                f"promoting both to {common}.")
  elif X.dtype != common:
    log_debug(f"{caller} casting {X.dtype} samples to {common}")

  if t_dtype is not None and t_dtype != common:
    tree = convert_tree(tree, common)
  if X.dtype != common:
    X = X.astype(common)
  return tree, X


def deg0_eval(tree: Node, X: np.ndarray) -> Tuple[np.ndarray, bool]:
  if tree.constant:
    return evaluate_constant(X.shape[1], tree.val), True
  return evaluate_feature(X, tree.feature), True


def eval_tree_array(tree: Node, X, operators: OperatorTable) -> Tuple[np.ndarray, bool]:
  """Evaluate ``tree`` on every column of ``X`` (shape ``(n_features, n_samples)``).

  Returns ``(values, complete)``; ``complete`` is False when a NaN or infinity
  appeared anywhere in the computation.
  """
  tree, X = promote_inputs(tree, X, 'eval_tree_array')
  ExpressionValidator.check_operator_indices(tree, operators)
  ExpressionValidator.check_samples(tree, X)
  with np.errstate(all='ignore'):
    values, complete = _eval_tree_array(tree, X, operators)
  if not complete:
    return values, False
  return values, not is_bad_array(values)


def _eval_tree_array(tree: Node, X: np.ndarray, operators: OperatorTable) -> Tuple[np.ndarray, bool]:
  if tree.degree == 0:
    return deg0_eval(tree, X)
  elif tree.degree == 1:
    return deg1_eval(tree, X, operators)
  else:
    return deg2_eval(tree, X, operators)


def deg1_eval(tree: Node, X: np.ndarray, operators: OperatorTable) -> Tuple[np.ndarray, bool]:
  cumulator, complete = _eval_tree_array(tree.l, X, operators)
  if not complete:
    return cumulator, False
  op = operators.get_unaop(tree.op)
  cumulator = np.asarray(op(cumulator), dtype=X.dtype)
  return cumulator, not is_bad_array(cumulator)


def deg2_eval(tree: Node, X: np.ndarray, operators: OperatorTable) -> Tuple[np.ndarray, bool]:
  cumulator, complete = _eval_tree_array(tree.l, X, operators)
  if not complete:
    return cumulator, False
  array2, complete2 = _eval_tree_array(tree.r, X, operators)
  if not complete2:
    return cumulator, False
  op = operators.get_binop(tree.op)
  cumulator = np.asarray(op(cumulator, array2), dtype=X.dtype)
  return cumulator, not is_bad_array(cumulator)
