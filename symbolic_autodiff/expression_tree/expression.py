import numpy as np
import sympy as sp
from typing import List, Optional, Sequence, Tuple, Union

from .core.node import Node
from .core.operators import OperatorTable
from .evaluation.evaluate import eval_tree_array
from .evaluation.derivative import eval_diff_tree_array, eval_grad_tree_array
from .utils.tree_utils import get_constants, set_constants, count_constants


class Expression:
  """A tree bundled with the operator table and variable names it was built against"""

  __slots__ = ('tree', 'operators', 'variable_names', '_string_cache')

  def __init__(self, tree: Node, operators: OperatorTable,
               variable_names: Optional[Sequence[str]] = None):
    self.tree = tree
    self.operators = operators
    self.variable_names = list(variable_names) if variable_names is not None else None
    self._string_cache: Optional[str] = None

  def evaluate(self, X: np.ndarray) -> Tuple[np.ndarray, bool]:
    return eval_tree_array(self.tree, X, self.operators)

  def __call__(self, X: np.ndarray) -> Tuple[np.ndarray, bool]:
    return self.evaluate(X)

  def differentiate(self, X: np.ndarray, direction: Union[int, str]) -> Tuple[np.ndarray, np.ndarray, bool]:
    """Derivative with respect to one feature, given by 1-based index or variable name"""
    return eval_diff_tree_array(self.tree, X, self.operators, self._feature_index(direction))

  def gradient(self, X: np.ndarray, variable: bool = False) -> Tuple[np.ndarray, np.ndarray, bool]:
    return eval_grad_tree_array(self.tree, X, self.operators, variable=variable)

  def _feature_index(self, direction: Union[int, str]) -> int:
    if isinstance(direction, str):
      if self.variable_names is None or direction not in self.variable_names:
        raise ValueError(f"Unknown variable '{direction}'")
      return self.variable_names.index(direction) + 1
    return int(direction)

  def to_string(self) -> str:
    if self._string_cache is None:
      self._string_cache = self.tree.to_string(self.operators, self.variable_names)
    return self._string_cache

  def to_sympy(self) -> sp.Expr:
    return self.tree.to_sympy(self.operators, self.variable_names)

  def copy(self) -> 'Expression':
    return Expression(self.tree.copy(), self.operators, self.variable_names)

  def size(self) -> int:
    return self.tree.size()

  def clear_cache(self):
    self._string_cache = None

  def count_constants(self) -> int:
    return count_constants(self.tree)

  def get_constants(self) -> List:
    return get_constants(self.tree)

  def set_constants(self, constants):
    set_constants(self.tree, list(constants))
    self.clear_cache()

  def __hash__(self) -> int:
    return hash(self.tree)

  def __eq__(self, other) -> bool:
    if not isinstance(other, Expression):
      return False
    return self.tree == other.tree and self.operators is other.operators

  def __repr__(self) -> str:
    return self.to_string()

  @classmethod
  def from_string(cls, expr_str: str, operators: OperatorTable,
                  variable_names: Sequence[str], **kwargs) -> 'Expression':
    from .parse import parse_expression
    return parse_expression(expr_str, operators, variable_names, **kwargs)
