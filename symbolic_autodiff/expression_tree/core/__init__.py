"""Core expression tree components."""

from .operators import (
    OperatorTable, build_operator_table,
    AutodiffDisabledError, OperatorIndexError,
    bind_node_operators, get_bound_operators,
    BINARY_SYMPY, UNARY_SYMPY, BINARY_EXPLICIT
)
from .node import Node, ConstantNode, FeatureNode, UnaryOpNode, BinaryOpNode

__all__ = [
    'OperatorTable', 'build_operator_table',
    'AutodiffDisabledError', 'OperatorIndexError',
    'bind_node_operators', 'get_bound_operators',
    'BINARY_SYMPY', 'UNARY_SYMPY', 'BINARY_EXPLICIT',
    'Node', 'ConstantNode', 'FeatureNode', 'UnaryOpNode', 'BinaryOpNode'
]
