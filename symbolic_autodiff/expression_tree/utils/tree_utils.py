"""
Tree Utility Functions

Traversal and bookkeeping helpers for expression trees: node and constant
counts, the constant index tree used to map constants onto gradient rows,
constant get/set in the same order, and precision conversion.
"""

import numpy as np
from typing import Iterator, List, Optional, Sequence

from ..core.node import Node, ConstantNode, FeatureNode, UnaryOpNode, BinaryOpNode


def iter_preorder(node: Node) -> Iterator[Node]:
    """Pre-order, left-to-right, depth-first traversal (iterative)"""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children()))


def count_nodes(node: Node) -> int:
    return sum(1 for _ in iter_preorder(node))


def count_depth(node: Node) -> int:
    """Maximum depth of the tree (leaves have depth 1)"""
    if node.degree == 0:
        return 1
    return 1 + max(count_depth(child) for child in node.children())


def count_constants(node: Node) -> int:
    return sum(1 for n in iter_preorder(node) if n.degree == 0 and n.constant)


def count_features(node: Node) -> int:
    """Largest feature index referenced by the tree, 0 if none"""
    return max((n.feature for n in iter_preorder(node) if isinstance(n, FeatureNode)), default=0)


class NodeIndex:
    """Shadow of a tree holding each constant leaf's ordinal.

    ``constant_index`` is the 0-based position of the constant in pre-order,
    or ``None`` for feature leaves and interior nodes.
    """

    __slots__ = ('constant_index', 'l', 'r')

    def __init__(self, constant_index: Optional[int] = None,
                 l: Optional['NodeIndex'] = None, r: Optional['NodeIndex'] = None):
        self.constant_index = constant_index
        self.l = l
        self.r = r

    def __repr__(self) -> str:
        if self.l is None:
            return f"NodeIndex({self.constant_index})"
        if self.r is None:
            return f"NodeIndex(l={self.l!r})"
        return f"NodeIndex(l={self.l!r}, r={self.r!r})"


def index_constants(node: Node, offset: int = 0) -> NodeIndex:
    """Build the constant index tree, numbering constants from ``offset``"""
    index_tree, _ = _index_constants(node, offset)
    return index_tree


def _index_constants(node: Node, next_index: int):
    if node.degree == 0:
        if node.constant:
            return NodeIndex(next_index), next_index + 1
        return NodeIndex(), next_index
    left, next_index = _index_constants(node.l, next_index)
    if node.degree == 1:
        return NodeIndex(l=left), next_index
    right, next_index = _index_constants(node.r, next_index)
    return NodeIndex(l=left, r=right), next_index


def get_constants(node: Node) -> List:
    """Constant values in pre-order (same order as index_constants)"""
    return [n.val for n in iter_preorder(node) if n.degree == 0 and n.constant]


def set_constants(node: Node, values: Sequence):
    """Write ``values`` into the constant leaves in pre-order"""
    constants = [n for n in iter_preorder(node) if n.degree == 0 and n.constant]
    if len(constants) != len(values):
        raise ValueError(f"Expected {len(constants)} constants, got {len(values)}")
    for leaf, value in zip(constants, values):
        leaf.val = type(leaf.val)(value)


def tree_dtype(node: Node) -> Optional[np.dtype]:
    """Common precision of the tree's constants, or None for a constant-free tree"""
    dtypes = [n.dtype for n in iter_preorder(node) if isinstance(n, ConstantNode)]
    if not dtypes:
        return None
    return np.result_type(*dtypes)


def convert_tree(node: Node, dtype) -> Node:
    """Copy of ``node`` with every constant cast to ``dtype``"""
    if node.degree == 0:
        if node.constant:
            return ConstantNode(node.val, dtype=dtype)
        return node.copy()
    if node.degree == 1:
        return UnaryOpNode(node.op, convert_tree(node.l, dtype))
    return BinaryOpNode(node.op, convert_tree(node.l, dtype), convert_tree(node.r, dtype))
