import numbers
import numpy as np
import sympy as sp
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Tuple

from .operators import OperatorTable, _x, _y

# Binary operator names printed infix by to_string
INFIX_NAMES = frozenset({'+', '-', '*', '/', '^'})


class Node(ABC):
  """Base node class. ``degree`` is the arity tag: 0 leaf, 1 unary, 2 binary."""

  __slots__ = ()

  degree: int = -1
  constant: bool = False

  @abstractmethod
  def children(self) -> Tuple['Node', ...]:
    pass

  @abstractmethod
  def copy(self) -> 'Node':
    pass

  @abstractmethod
  def to_string(self, operators: Optional[OperatorTable] = None,
                variable_names: Optional[Sequence[str]] = None) -> str:
    pass

  @abstractmethod
  def to_sympy(self, operators: OperatorTable,
               variable_names: Optional[Sequence[str]] = None) -> sp.Expr:
    pass

  @abstractmethod
  def _key(self) -> tuple:
    pass

  def size(self) -> int:
    """Node count"""
    return 1 + sum(child.size() for child in self.children())

  def __eq__(self, other) -> bool:
    if not isinstance(other, Node):
      return NotImplemented
    return self._key() == other._key()

  def __hash__(self) -> int:
    return hash(self._key())

  def __repr__(self) -> str:
    return self.to_string()

  # numpy scalars defer to the reflected methods below
  __array_ufunc__ = None

  def __add__(self, other):
    return _apply('+', self, other)

  def __radd__(self, other):
    return _apply('+', other, self)

  def __sub__(self, other):
    return _apply('-', self, other)

  def __rsub__(self, other):
    return _apply('-', other, self)

  def __mul__(self, other):
    return _apply('*', self, other)

  def __rmul__(self, other):
    return _apply('*', other, self)

  def __truediv__(self, other):
    return _apply('/', self, other)

  def __rtruediv__(self, other):
    return _apply('/', other, self)

  def __pow__(self, other):
    return _apply('^', self, other)

  def __rpow__(self, other):
    return _apply('^', other, self)

  def __neg__(self):
    if self.constant:
      return ConstantNode(-self.val)
    return _apply('neg', self)


def _apply(name: str, *operands):
  if not all(isinstance(o, (Node, numbers.Real)) for o in operands):
    return NotImplemented
  from ..utils.node_builder import apply_operator
  return apply_operator(name, *operands)


class ConstantNode(Node):
  __slots__ = ('val',)

  degree = 0
  constant = True

  def __init__(self, val, dtype=None):
    if dtype is not None:
      self.val = np.dtype(dtype).type(val)
    elif isinstance(val, np.floating):
      self.val = val
    else:
      self.val = np.float64(val)

  @property
  def dtype(self) -> np.dtype:
    return np.dtype(type(self.val))

  def children(self):
    return ()

  def copy(self) -> 'ConstantNode':
    return ConstantNode(self.val)

  def to_string(self, operators=None, variable_names=None) -> str:
    return repr(float(self.val))

  def to_sympy(self, operators, variable_names=None):
    return sp.Float(float(self.val))

  def _key(self):
    return (0, True, float(self.val))


class FeatureNode(Node):
  __slots__ = ('feature',)

  degree = 0
  constant = False

  def __init__(self, feature: int):
    if int(feature) < 1:
      raise ValueError(f"Feature index must be >= 1, got {feature}")
    self.feature = int(feature)

  def children(self):
    return ()

  def copy(self) -> 'FeatureNode':
    return FeatureNode(self.feature)

  def to_string(self, operators=None, variable_names=None) -> str:
    if variable_names is not None:
      return str(variable_names[self.feature - 1])
    return f"x{self.feature}"

  def to_sympy(self, operators, variable_names=None):
    return sp.Symbol(self.to_string(operators, variable_names), real=True)

  def _key(self):
    return (0, False, self.feature)


class UnaryOpNode(Node):
  __slots__ = ('op', 'l')

  degree = 1

  def __init__(self, op: int, l: Node):
    self.op = int(op)
    self.l = l

  def children(self):
    return (self.l,)

  def copy(self) -> 'UnaryOpNode':
    return UnaryOpNode(self.op, self.l.copy())

  def to_string(self, operators=None, variable_names=None) -> str:
    name = operators.unaop_names[self.op - 1] if operators is not None else f"unaop{self.op}"
    return f"{name}({self.l.to_string(operators, variable_names)})"

  def to_sympy(self, operators, variable_names=None):
    arg = self.l.to_sympy(operators, variable_names)
    template = operators.unaop_templates[self.op - 1]
    if template is None:
      return sp.Function(operators.unaop_names[self.op - 1])(arg)
    return template.xreplace({_x: arg})

  def _key(self):
    return (1, self.op, self.l._key())


class BinaryOpNode(Node):
  __slots__ = ('op', 'l', 'r')

  degree = 2

  def __init__(self, op: int, l: Node, r: Node):
    self.op = int(op)
    self.l = l
    self.r = r

  def children(self):
    return (self.l, self.r)

  def copy(self) -> 'BinaryOpNode':
    return BinaryOpNode(self.op, self.l.copy(), self.r.copy())

  def to_string(self, operators=None, variable_names=None) -> str:
    name = operators.binop_names[self.op - 1] if operators is not None else f"binop{self.op}"
    left = self.l.to_string(operators, variable_names)
    right = self.r.to_string(operators, variable_names)
    if name in INFIX_NAMES:
      return f"({left} {name} {right})"
    return f"{name}({left}, {right})"

  def to_sympy(self, operators, variable_names=None):
    left = self.l.to_sympy(operators, variable_names)
    right = self.r.to_sympy(operators, variable_names)
    template = operators.binop_templates[self.op - 1]
    if template is None:
      return sp.Function(operators.binop_names[self.op - 1])(left, right)
    return template.xreplace({_x: left, _y: right})

  def _key(self):
    return (2, self.op, self.l._key(), self.r._key())
