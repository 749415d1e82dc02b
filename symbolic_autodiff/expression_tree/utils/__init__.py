"""Utilities for expression trees."""

from .tree_utils import (
    iter_preorder, count_nodes, count_depth, count_constants, count_features,
    NodeIndex, index_constants, get_constants, set_constants,
    tree_dtype, convert_tree
)
from .node_builder import apply_operator, node_function
from .validator import ExpressionValidator

__all__ = [
    'iter_preorder', 'count_nodes', 'count_depth', 'count_constants', 'count_features',
    'NodeIndex', 'index_constants', 'get_constants', 'set_constants',
    'tree_dtype', 'convert_tree',
    'apply_operator', 'node_function',
    'ExpressionValidator'
]
