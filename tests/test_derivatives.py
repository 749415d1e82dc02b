import logging

import numpy as np
import pytest

from symbolic_autodiff import build_operator_table
from symbolic_autodiff.expression_tree import (
  ConstantNode, FeatureNode, UnaryOpNode, BinaryOpNode,
  AutodiffDisabledError, OperatorIndexError,
  eval_tree_array, eval_diff_tree_array, eval_grad_tree_array,
  differentiate, gradient, count_constants, get_constants, set_constants
)

FD_STEP = 1e-6


def _worked_example():
  ops = build_operator_table(['+', '*'], enable_autodiff=True)
  # (x1 + 2.0) * x2
  tree = BinaryOpNode(2, BinaryOpNode(1, FeatureNode(1), ConstantNode(2.0)), FeatureNode(2))
  X = np.array([[3.0], [5.0]])
  return tree, X, ops


def _feature_fd(tree, X, operators, feature):
  step = np.zeros_like(X)
  step[feature - 1] = FD_STEP
  up, _ = eval_tree_array(tree, X + step, operators)
  down, _ = eval_tree_array(tree, X - step, operators)
  return (up - down) / (2 * FD_STEP)


def _constant_fd(tree, X, operators, k):
  rows = []
  base = [float(c) for c in get_constants(tree)]
  for sign in (1, -1):
    shifted = tree.copy()
    constants = list(base)
    constants[k] += sign * FD_STEP
    set_constants(shifted, constants)
    rows.append(eval_tree_array(shifted, X, operators)[0])
  return (rows[0] - rows[1]) / (2 * FD_STEP)


def _assert_matches_fd(derivative, fd, values):
  # finite-difference rounding error grows with the magnitude of the values
  scale = max(1.0, float(np.max(np.abs(values))))
  np.testing.assert_allclose(derivative, fd, rtol=1e-4, atol=1e-5 * scale)


def test_worked_example():
  tree, X, ops = _worked_example()
  values, d1, complete = eval_diff_tree_array(tree, X, ops, 1)
  assert complete
  np.testing.assert_array_equal(values, [25.0])
  np.testing.assert_array_equal(d1, [5.0])
  _, d2, _ = eval_diff_tree_array(tree, X, ops, 2)
  np.testing.assert_array_equal(d2, [5.0])
  values, grad, complete = eval_grad_tree_array(tree, X, ops, variable=True)
  assert complete
  np.testing.assert_array_equal(values, [25.0])
  np.testing.assert_array_equal(grad, [[5.0], [5.0]])
  _, const_grad, _ = eval_grad_tree_array(tree, X, ops, variable=False)
  np.testing.assert_array_equal(const_grad, [[5.0]])


@pytest.mark.parametrize('n_samples', [1, 2, 17])
def test_feature_derivative_identity(operators, n_samples):
  X = np.random.default_rng(1).normal(size=(3, n_samples))
  tree = FeatureNode(2)
  _, d, complete = eval_diff_tree_array(tree, X, operators, 2)
  assert complete
  np.testing.assert_array_equal(d, np.ones(n_samples))
  for k in (1, 3):
    _, d, _ = eval_diff_tree_array(tree, X, operators, k)
    np.testing.assert_array_equal(d, np.zeros(n_samples))


def test_constant_leaf_has_zero_derivative(operators):
  values, d, complete = eval_diff_tree_array(ConstantNode(4.0), np.ones((1, 3)), operators, 1)
  assert complete
  np.testing.assert_array_equal(values, [4.0] * 3)
  np.testing.assert_array_equal(d, [0.0] * 3)


def test_chain_rule_closed_form(operators):
  # exp(sin(x1) * x2)
  tree = UnaryOpNode(3, BinaryOpNode(3, UnaryOpNode(1, FeatureNode(1)), FeatureNode(2)))
  X = np.array([[0.2, -0.4, 1.1], [0.5, 1.5, -0.3]])
  inner = np.sin(X[0]) * X[1]
  values, d1, complete = eval_diff_tree_array(tree, X, operators, 1)
  assert complete
  np.testing.assert_allclose(values, np.exp(inner))
  np.testing.assert_allclose(d1, np.exp(inner) * np.cos(X[0]) * X[1])
  _, d2, _ = eval_diff_tree_array(tree, X, operators, 2)
  np.testing.assert_allclose(d2, np.exp(inner) * np.sin(X[0]))


def test_directional_matches_finite_differences(smooth_operators, random_trees):
  X = np.random.default_rng(2).uniform(-1.0, 1.0, size=(3, 25))
  checked = 0
  for tree in random_trees:
    for direction in (1, 2, 3):
      values, d, complete = eval_diff_tree_array(tree, X, smooth_operators, direction)
      if not complete:
        continue
      _assert_matches_fd(d, _feature_fd(tree, X, smooth_operators, direction), values)
      checked += 1
  assert checked > 60


def test_constant_gradient_matches_finite_differences(smooth_operators, random_trees):
  X = np.random.default_rng(3).uniform(-1.0, 1.0, size=(3, 20))
  checked = 0
  for tree in random_trees:
    n_constants = count_constants(tree)
    values, grad, complete = eval_grad_tree_array(tree, X, smooth_operators, variable=False)
    assert grad.shape == (n_constants, 20)
    if not complete:
      continue
    for k in range(n_constants):
      _assert_matches_fd(grad[k], _constant_fd(tree, X, smooth_operators, k), values)
      checked += 1
  assert checked > 0


def test_gradient_rows_equal_directional_derivatives(smooth_operators, random_trees):
  X = np.random.default_rng(4).uniform(-1.0, 1.0, size=(3, 12))
  for tree in random_trees:
    values, grad, complete = eval_grad_tree_array(tree, X, smooth_operators, variable=True)
    assert grad.shape == (3, 12)
    for i in (1, 2, 3):
      values_i, d_i, complete_i = eval_diff_tree_array(tree, X, smooth_operators, i)
      assert complete and complete_i
      np.testing.assert_array_equal(values_i, values)
      np.testing.assert_array_equal(grad[i - 1], d_i)


def test_constant_rows_follow_preorder(operators):
  # sin(5.0 * x1) - 7.0: row 0 is d/d5.0, row 1 is d/d7.0
  tree = BinaryOpNode(2,
                      UnaryOpNode(1, BinaryOpNode(3, ConstantNode(5.0), FeatureNode(1))),
                      ConstantNode(7.0))
  X = np.array([[0.1, 0.2, 0.3]])
  _, grad, complete = eval_grad_tree_array(tree, X, operators, variable=False)
  assert complete
  assert grad.shape == (2, 3)
  np.testing.assert_allclose(grad[0], np.cos(5.0 * X[0]) * X[0])
  np.testing.assert_allclose(grad[1], -np.ones(3))


def test_features_mode_ignores_constants(operators):
  tree = BinaryOpNode(3, ConstantNode(2.0), FeatureNode(2))
  _, grad, complete = eval_grad_tree_array(tree, np.ones((3, 2)), operators, variable=True)
  assert complete
  np.testing.assert_array_equal(grad, [[0.0, 0.0], [2.0, 2.0], [0.0, 0.0]])


def test_constants_mode_without_constants(operators):
  _, grad, complete = eval_grad_tree_array(UnaryOpNode(1, FeatureNode(1)), np.ones((1, 4)),
                                           operators, variable=False)
  assert complete
  assert grad.shape == (0, 4)


def test_non_finite_marks_incomplete(operators):
  X = np.array([[1.0, 1.0], [2.0, 0.0]])
  bad = BinaryOpNode(4, FeatureNode(1), FeatureNode(2))
  good = BinaryOpNode(3, FeatureNode(1), FeatureNode(2))
  assert not eval_diff_tree_array(bad, X, operators, 1)[2]
  assert not eval_grad_tree_array(bad, X, operators, variable=True)[2]
  assert eval_diff_tree_array(good, X, operators, 1)[2]
  assert eval_grad_tree_array(good, X, operators, variable=True)[2]


def test_incomplete_child_short_circuits(operators):
  # sin(log(x1)) with a negative sample: the failure in log stops the chain
  tree = UnaryOpNode(1, UnaryOpNode(4, FeatureNode(1)))
  _, _, complete = eval_diff_tree_array(tree, np.array([[-1.0, 2.0]]), operators, 1)
  assert not complete


def test_non_finite_derivative_with_finite_values():
  ops = build_operator_table(['*'], ['sqrt'], enable_autodiff=True)
  tree = UnaryOpNode(1, FeatureNode(1))
  X = np.array([[0.0, 4.0]])
  values, _ = eval_tree_array(tree, X, ops)
  np.testing.assert_allclose(values, [0.0, 2.0])
  assert not eval_diff_tree_array(tree, X, ops, 1)[2]
  assert not eval_grad_tree_array(tree, X, ops, variable=True)[2]
  assert eval_diff_tree_array(tree, np.array([[1.0, 4.0]]), ops, 1)[2]


def test_requires_derivatives():
  ops = build_operator_table(['+', '*'])
  tree, X, _ = _worked_example()
  with pytest.raises(AutodiffDisabledError):
    eval_diff_tree_array(tree, X, ops, 1)
  with pytest.raises(AutodiffDisabledError):
    eval_grad_tree_array(tree, X, ops, variable=True)


def test_out_of_range_direction_and_operator(operators):
  X = np.ones((2, 3))
  with pytest.raises(ValueError):
    eval_diff_tree_array(FeatureNode(1), X, operators, 0)
  with pytest.raises(ValueError):
    eval_diff_tree_array(FeatureNode(1), X, operators, 3)
  with pytest.raises(OperatorIndexError):
    eval_diff_tree_array(UnaryOpNode(5, FeatureNode(1)), X, operators, 1)


def test_mixed_precision_is_promoted_with_warning(operators, caplog):
  tree = BinaryOpNode(3, ConstantNode(2.0, dtype=np.float32), FeatureNode(1))
  X = np.array([[1.0, 2.0]], dtype=np.float64)
  with caplog.at_level(logging.WARNING, logger='symbolic_autodiff'):
    values, d, complete = eval_diff_tree_array(tree, X, operators, 1)
  assert complete
  assert values.dtype == np.float64 and d.dtype == np.float64
  np.testing.assert_allclose(d, [2.0, 2.0])
  assert any('mixed types' in record.getMessage() for record in caplog.records)
  # the caller's tree keeps its precision
  assert tree.l.val.dtype == np.float32


def test_single_precision_stays_single(operators):
  tree = UnaryOpNode(1, BinaryOpNode(3, ConstantNode(2.0, dtype=np.float32), FeatureNode(1)))
  X = np.array([[0.1, 0.2]], dtype=np.float32)
  values, grad, complete = eval_grad_tree_array(tree, X, operators, variable=False)
  assert complete
  assert values.dtype == np.float32 and grad.dtype == np.float32


def test_half_precision_is_widened_to_single(operators):
  X = np.ones((2, 3), dtype=np.float16)
  values, d, complete = eval_diff_tree_array(FeatureNode(1), X, operators, 1)
  assert complete
  assert values.dtype == np.float32 and d.dtype == np.float32
  np.testing.assert_array_equal(d, [1.0, 1.0, 1.0])

  tree = BinaryOpNode(3, ConstantNode(2.0, dtype=np.float16), FeatureNode(2))
  values, grad, complete = eval_grad_tree_array(tree, X, operators, variable=True)
  assert complete
  assert grad.dtype == np.float32
  np.testing.assert_array_equal(grad, [[0.0, 0.0, 0.0], [2.0, 2.0, 2.0]])
  values, complete = eval_tree_array(tree, X, operators)
  assert complete and values.dtype == np.float32


def test_extended_precision_is_computed_in_double(operators):
  X = np.full((1, 2), 0.5, dtype=np.longdouble)
  tree = UnaryOpNode(1, FeatureNode(1))
  values, d, complete = eval_diff_tree_array(tree, X, operators, 1)
  assert complete
  assert values.dtype == np.float64 and d.dtype == np.float64
  np.testing.assert_allclose(d, np.cos([0.5, 0.5]))


def test_mode_wrappers(operators):
  tree, X, ops = _worked_example()
  np.testing.assert_array_equal(differentiate(tree, X, ops, 2)[1], [5.0])
  np.testing.assert_array_equal(gradient(tree, X, ops, 'features')[1], [[5.0], [5.0]])
  np.testing.assert_array_equal(gradient(tree, X, ops, 'constants')[1], [[5.0]])
  with pytest.raises(ValueError):
    gradient(tree, X, ops, 'weights')
