import numpy as np

from ..core.node import Node
from ..core.operators import OperatorTable, OperatorIndexError
from .tree_utils import iter_preorder, count_features


class ExpressionValidator:

  @staticmethod
  def check_operator_indices(node: Node, operators: OperatorTable):
    """Raise OperatorIndexError if any node refers past the end of its operator list."""
    for n in iter_preorder(node):
      if n.degree == 1 and not 1 <= n.op <= len(operators.unaops):
        raise OperatorIndexError(
          f"unary operator index {n.op} out of range 1..{len(operators.unaops)}")
      if n.degree == 2 and not 1 <= n.op <= len(operators.binops):
        raise OperatorIndexError(
          f"binary operator index {n.op} out of range 1..{len(operators.binops)}")

  @staticmethod
  def check_samples(node: Node, X: np.ndarray):
    """Raise ValueError unless X is a (n_features, n_samples) matrix covering every feature."""
    if np.ndim(X) != 2:
      raise ValueError(f"Sample matrix must be 2-dimensional (n_features, n_samples), got shape {np.shape(X)}")
    needed = count_features(node)
    if needed > X.shape[0]:
      raise ValueError(f"Tree uses feature {needed} but the sample matrix has {X.shape[0]} rows")

  @staticmethod
  def is_valid_expression(node: Node, operators: OperatorTable, X: np.ndarray = None) -> bool:
    try:
      ExpressionValidator.check_operator_indices(node, operators)
      if X is not None:
        ExpressionValidator.check_samples(node, X)
    except (OperatorIndexError, ValueError):
      return False
    return True
