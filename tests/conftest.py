import numpy as np
import pytest

from symbolic_autodiff import build_operator_table
from symbolic_autodiff.expression_tree import ConstantNode, FeatureNode, UnaryOpNode, BinaryOpNode


@pytest.fixture
def operators():
  """'+' '-' '*' '/' and sin cos exp log, with derivatives"""
  return build_operator_table(['+', '-', '*', '/'], ['sin', 'cos', 'exp', 'log'], enable_autodiff=True)


@pytest.fixture
def smooth_operators():
  """Operators with no singularities, for finite-difference checks"""
  return build_operator_table(['+', '-', '*'], ['sin', 'cos', 'exp'], enable_autodiff=True)


def random_tree(rng, depth, n_features, n_binary, n_unary):
  if depth == 0 or rng.random() < 0.25:
    if rng.random() < 0.4:
      return ConstantNode(rng.uniform(-1.0, 1.0))
    return FeatureNode(int(rng.integers(1, n_features + 1)))
  if rng.random() < 0.4:
    return UnaryOpNode(int(rng.integers(1, n_unary + 1)),
                       random_tree(rng, depth - 1, n_features, n_binary, n_unary))
  return BinaryOpNode(int(rng.integers(1, n_binary + 1)),
                      random_tree(rng, depth - 1, n_features, n_binary, n_unary),
                      random_tree(rng, depth - 1, n_features, n_binary, n_unary))


@pytest.fixture
def random_trees(smooth_operators):
  rng = np.random.default_rng(0)
  n_binary, n_unary = len(smooth_operators.binops), len(smooth_operators.unaops)
  return [random_tree(rng, 3, 3, n_binary, n_unary) for _ in range(40)]
