"""
Node Arithmetic

Builds trees from ordinary Python expressions on nodes, e.g.
``(FeatureNode(1) + 2.0) * FeatureNode(2)`` or ``node_function('cos')(x2)``.
Operator names resolve against the bound operator table (the last one built,
unless another was bound explicitly). Plain numbers become constants at the
common precision of the operands, and operators applied only to constants
fold into a single constant.
"""

import numbers
import numpy as np
from typing import Callable, List, Optional

from ..core.node import Node, ConstantNode, UnaryOpNode, BinaryOpNode
from ..core.operators import OperatorTable, get_bound_operators
from .tree_utils import tree_dtype, convert_tree

# Names tried when the requested binary operator is not in the table
BINARY_ALIASES = {'^': ('pow',), 'pow': ('^',)}


def _require_table(operators: Optional[OperatorTable]) -> OperatorTable:
    operators = operators if operators is not None else get_bound_operators()
    if operators is None:
        raise RuntimeError("No operator table is bound to nodes; build one with build_operator_table")
    return operators


def _promote(operands) -> List[Node]:
    """Turn operands into private node copies sharing one constant precision"""
    dtypes = []
    for value in operands:
        if isinstance(value, Node):
            dtype = tree_dtype(value)
            if dtype is not None:
                dtypes.append(dtype)
        elif isinstance(value, np.generic):
            dtypes.append(value.dtype)
    common = np.result_type(*dtypes) if dtypes else np.dtype(np.float64)
    if not np.issubdtype(common, np.floating):
        common = np.result_type(common, np.float64)

    nodes = []
    for value in operands:
        if isinstance(value, Node):
            nodes.append(convert_tree(value, common))
        else:
            nodes.append(ConstantNode(value, dtype=common))
    return nodes


def apply_operator(name: str, *operands, operators: Optional[OperatorTable] = None) -> Node:
    """Apply the operator called ``name`` to nodes and/or numbers.

    Raises:
        ValueError: if the table has no operator of that name and arity.
        TypeError: for operands that are neither nodes nor real numbers.
    """
    operators = _require_table(operators)
    for value in operands:
        if not isinstance(value, (Node, numbers.Real)) or isinstance(value, bool):
            raise TypeError(f"Cannot build a node from {type(value).__name__}")

    if len(operands) == 1:
        op = operators.find_unaop(name)
        available = operators.unaop_names
    elif len(operands) == 2:
        op = operators.find_binop(name)
        for alias in BINARY_ALIASES.get(name, ()):
            if op is not None:
                break
            op = operators.find_binop(alias)
        available = operators.binop_names
    else:
        raise ValueError(f"Operators take one or two operands, got {len(operands)}")
    if op is None:
        raise ValueError(f"Unrecognized operator: '{name}' with no matches in {list(available)}")

    nodes = _promote(operands)
    if all(node.constant for node in nodes):
        func = operators.get_unaop(op) if len(nodes) == 1 else operators.get_binop(op)
        with np.errstate(all='ignore'):
            value = np.asarray(func(*[np.array([node.val]) for node in nodes])).reshape(-1)[0]
        return ConstantNode(value, dtype=nodes[0].dtype)
    if len(nodes) == 1:
        return UnaryOpNode(op, nodes[0])
    return BinaryOpNode(op, nodes[0], nodes[1])


def node_function(name: str, operators: Optional[OperatorTable] = None) -> Callable[..., Node]:
    """Callable building ``name(...)`` nodes, e.g. ``cos = node_function('cos')``"""
    def build(*operands):
        return apply_operator(name, *operands, operators=operators)
    build.__name__ = name
    return build
