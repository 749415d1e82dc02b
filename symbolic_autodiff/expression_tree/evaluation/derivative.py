"""
Forward-mode differentiation of expression trees.

Two entry points share the degree-0/1/2 dispatch of the base evaluator:

* ``eval_diff_tree_array`` carries one derivative vector alongside the values
  (derivative with respect to a single feature).
* ``eval_grad_tree_array`` carries a ``(n_gradients, n_samples)`` matrix, one
  row per feature or per constant.

Every per-sample step is a whole-array numpy operation with no dependency
between samples. Numerical failure (NaN/inf) never raises; it is reported
through the ``complete`` flag and stops further work in the affected branch.
"""

import numpy as np
from typing import Optional, Tuple

from ..core.node import Node
from ..core.operators import OperatorTable
from ..utils.tree_utils import NodeIndex, count_constants, index_constants
from ..utils.validator import ExpressionValidator
from .evaluate import deg0_eval, is_bad_array, promote_inputs


def _is_complete(*arrays: np.ndarray) -> bool:
  return not any(is_bad_array(a) for a in arrays)


def eval_diff_tree_array(tree: Node, X, operators: OperatorTable,
                         direction: int) -> Tuple[np.ndarray, np.ndarray, bool]:
  """Evaluate ``tree`` and its derivative with respect to feature ``direction``.

  Args:
    tree: Expression tree.
    X: Samples, shape ``(n_features, n_samples)``.
    operators: Table the tree was built against; must carry derivatives.
    direction: 1-based feature index to differentiate with respect to.

  Returns:
    ``(values, derivative, complete)``; ``complete`` is False if a NaN or
    infinity was produced anywhere.
  """
  operators.require_autodiff()
  tree, X = promote_inputs(tree, X, 'eval_diff_tree_array')
  ExpressionValidator.check_operator_indices(tree, operators)
  ExpressionValidator.check_samples(tree, X)
  if not 1 <= direction <= X.shape[0]:
    raise ValueError(f"direction must be in 1..{X.shape[0]}, got {direction}")

  with np.errstate(all='ignore'):
    values, derivative, complete = _eval_diff_tree_array(tree, X, operators, direction)
  if not complete:
    return values, derivative, False
  return values, derivative, _is_complete(values, derivative)


def _eval_diff_tree_array(tree: Node, X: np.ndarray, operators: OperatorTable,
                          direction: int) -> Tuple[np.ndarray, np.ndarray, bool]:
  if tree.degree == 0:
    return diff_deg0_eval(tree, X, direction)
  elif tree.degree == 1:
    return diff_deg1_eval(tree, X, operators, direction)
  else:
    return diff_deg2_eval(tree, X, operators, direction)


def diff_deg0_eval(tree: Node, X: np.ndarray, direction: int):
  n = X.shape[1]
  const_part, _ = deg0_eval(tree, X)
  if not tree.constant and tree.feature == direction:
    derivative_part = np.ones(n, dtype=X.dtype)
  else:
    derivative_part = np.zeros(n, dtype=X.dtype)
  return const_part, derivative_part, True


def diff_deg1_eval(tree: Node, X: np.ndarray, operators: OperatorTable, direction: int):
  cumulator, dcumulator, complete = _eval_diff_tree_array(tree.l, X, operators, direction)
  if not complete:
    return cumulator, dcumulator, False

  op = operators.get_unaop(tree.op)
  diff_op = operators.get_diff_unaop(tree.op)

  x = np.asarray(op(cumulator), dtype=X.dtype)
  dx = np.asarray(diff_op(cumulator), dtype=X.dtype) * dcumulator
  return x, dx, _is_complete(x, dx)


def diff_deg2_eval(tree: Node, X: np.ndarray, operators: OperatorTable, direction: int):
  cumulator, dcumulator, complete = _eval_diff_tree_array(tree.l, X, operators, direction)
  if not complete:
    return cumulator, dcumulator, False
  array2, dcumulator2, complete2 = _eval_diff_tree_array(tree.r, X, operators, direction)
  if not complete2:
    return array2, dcumulator2, False

  op = operators.get_binop(tree.op)
  diff_op = operators.get_diff_binop(tree.op)

  x = np.asarray(op(cumulator, array2), dtype=X.dtype)
  d_left, d_right = diff_op(cumulator, array2)
  d_left = np.asarray(d_left, dtype=X.dtype)
  d_right = np.asarray(d_right, dtype=X.dtype)
  dx = d_left * dcumulator + d_right * dcumulator2
  return x, dx, _is_complete(x, dx)


def eval_grad_tree_array(tree: Node, X, operators: OperatorTable,
                         variable: bool = False) -> Tuple[np.ndarray, np.ndarray, bool]:
  """Evaluate ``tree`` and its full forward-mode gradient.

  With ``variable=True`` the gradient has one row per feature (row ``i - 1``
  is feature ``i``); otherwise one row per constant, in pre-order.

  Returns:
    ``(values, gradient, complete)`` with ``gradient`` of shape
    ``(n_gradients, n_samples)``.
  """
  operators.require_autodiff()
  tree, X = promote_inputs(tree, X, 'eval_grad_tree_array')
  ExpressionValidator.check_operator_indices(tree, operators)
  ExpressionValidator.check_samples(tree, X)

  n = X.shape[1]
  if variable:
    n_gradients = X.shape[0]
    index_tree = None
  else:
    n_gradients = count_constants(tree)
    index_tree = index_constants(tree, 0)

  with np.errstate(all='ignore'):
    values, gradient, complete = _eval_grad_tree_array(
      tree, n, n_gradients, index_tree, X, operators, variable)
  if not complete:
    return values, gradient, False
  return values, gradient, _is_complete(values, gradient)


def _child(index_tree: Optional[NodeIndex], side: str) -> Optional[NodeIndex]:
  return None if index_tree is None else getattr(index_tree, side)


def _eval_grad_tree_array(tree: Node, n: int, n_gradients: int, index_tree: Optional[NodeIndex],
                          X: np.ndarray, operators: OperatorTable, variable: bool):
  if tree.degree == 0:
    return grad_deg0_eval(tree, n, n_gradients, index_tree, X, variable)
  elif tree.degree == 1:
    return grad_deg1_eval(tree, n, n_gradients, index_tree, X, operators, variable)
  else:
    return grad_deg2_eval(tree, n, n_gradients, index_tree, X, operators, variable)


def grad_deg0_eval(tree: Node, n: int, n_gradients: int, index_tree: Optional[NodeIndex],
                   X: np.ndarray, variable: bool):
  const_part, _ = deg0_eval(tree, X)
  derivative_part = np.zeros((n_gradients, n), dtype=X.dtype)

  # Leaf kind does not match the requested mode
  if variable == tree.constant:
    return const_part, derivative_part, True

  index = tree.feature - 1 if variable else index_tree.constant_index
  derivative_part[index, :] = 1
  return const_part, derivative_part, True


def grad_deg1_eval(tree: Node, n: int, n_gradients: int, index_tree: Optional[NodeIndex],
                   X: np.ndarray, operators: OperatorTable, variable: bool):
  cumulator, dcumulator, complete = _eval_grad_tree_array(
    tree.l, n, n_gradients, _child(index_tree, 'l'), X, operators, variable)
  if not complete:
    return cumulator, dcumulator, False

  op = operators.get_unaop(tree.op)
  diff_op = operators.get_diff_unaop(tree.op)

  x = np.asarray(op(cumulator), dtype=X.dtype)
  dx = np.asarray(diff_op(cumulator), dtype=X.dtype)
  # Scale every gradient row of column j by f'(x_j)
  dcumulator *= dx[np.newaxis, :]
  return x, dcumulator, _is_complete(x, dcumulator)


def grad_deg2_eval(tree: Node, n: int, n_gradients: int, index_tree: Optional[NodeIndex],
                   X: np.ndarray, operators: OperatorTable, variable: bool):
  cumulator1, dcumulator1, complete = _eval_grad_tree_array(
    tree.l, n, n_gradients, _child(index_tree, 'l'), X, operators, variable)
  if not complete:
    return cumulator1, dcumulator1, False
  cumulator2, dcumulator2, complete2 = _eval_grad_tree_array(
    tree.r, n, n_gradients, _child(index_tree, 'r'), X, operators, variable)
  if not complete2:
    return cumulator2, dcumulator2, False

  op = operators.get_binop(tree.op)
  diff_op = operators.get_diff_binop(tree.op)

  x = np.asarray(op(cumulator1, cumulator2), dtype=X.dtype)
  d_left, d_right = diff_op(cumulator1, cumulator2)
  d_left = np.asarray(d_left, dtype=X.dtype)[np.newaxis, :]
  d_right = np.asarray(d_right, dtype=X.dtype)[np.newaxis, :]
  derivative_part = d_left * dcumulator1 + d_right * dcumulator2
  return x, derivative_part, _is_complete(x, derivative_part)


GRADIENT_MODES = ('features', 'constants')


def differentiate(tree: Node, X, operators: OperatorTable, direction: int):
  """Directional derivative with respect to one feature; see eval_diff_tree_array"""
  return eval_diff_tree_array(tree, X, operators, direction)


def gradient(tree: Node, X, operators: OperatorTable, with_respect_to: str = 'features'):
  """Full gradient with respect to ``'features'`` or ``'constants'``"""
  if with_respect_to not in GRADIENT_MODES:
    raise ValueError(f"with_respect_to must be one of {GRADIENT_MODES}, got {with_respect_to!r}")
  return eval_grad_tree_array(tree, X, operators, variable=(with_respect_to == 'features'))
