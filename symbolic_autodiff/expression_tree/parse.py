"""
Parse Python-syntax expressions into trees.

Calls and infix operators are looked up by name in an operator table,
symbols in ``variable_names`` become feature leaves and numeric literals
become constants. Operand order is kept exactly as written.
"""

import ast
import numpy as np
from typing import Callable, Mapping, Optional, Sequence

from .core.node import Node, ConstantNode, FeatureNode, UnaryOpNode, BinaryOpNode
from .core.operators import OperatorTable
from .expression import Expression

INFIX_OPERATORS = {
    ast.Add: '+',
    ast.Sub: '-',
    ast.Mult: '*',
    ast.Div: '/',
    ast.Pow: '^',
}

# Alternative table names tried when the infix name is not registered
INFIX_ALIASES = {'^': ('pow',)}

# Only these calls accept more than two arguments, folded to the left
VARIADIC_NAMES = frozenset({'+', '-', '*', 'add', 'sub', 'mul'})


def parse_expression(text: str, operators: OperatorTable, variable_names: Sequence[str],
                     evaluate_on: Optional[Mapping[str, Callable]] = None,
                     dtype=np.float64) -> Expression:
    """
    Parse ``text`` into an :class:`Expression`.

    Args:
        text: Expression in Python syntax, e.g. ``"my_op(x, sin(y) + 0.3)"``.
        operators: Operator table providing the unary/binary operator names.
        variable_names: Names mapped to features 1..n in order.
        evaluate_on: Functions called directly with the parsed child nodes
            instead of becoming operator nodes.
        dtype: Precision of the constants in the resulting tree.

    Raises:
        ValueError: for syntax errors, unknown names or unknown operators.
    """
    try:
        module = ast.parse(text.strip(), mode='eval')
    except SyntaxError as e:
        raise ValueError(f"Cannot parse expression {text!r}: {e.msg}") from e
    parser = _TreeBuilder(operators, list(variable_names), evaluate_on or {}, dtype)
    return Expression(parser.build(module.body), operators, variable_names)


class _TreeBuilder:

    def __init__(self, operators: OperatorTable, variable_names: Sequence[str],
                 evaluate_on: Mapping[str, Callable], dtype):
        self.operators = operators
        self.variable_names = variable_names
        self.evaluate_on = evaluate_on
        self.dtype = dtype

    def build(self, node: ast.AST) -> Node:
        if isinstance(node, ast.Constant):
            return self._constant(node.value)
        if isinstance(node, ast.Name):
            return self._symbol(node.id)
        if isinstance(node, ast.UnaryOp):
            return self._unary_op(node)
        if isinstance(node, ast.BinOp):
            return self._binary_op(node)
        if isinstance(node, ast.Call):
            return self._call(node)
        raise ValueError(f"Unrecognized expression type: {type(node).__name__}. "
                         "Only function calls, operators, variables and numbers are allowed.")

    def _constant(self, value) -> Node:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Unsupported literal: {value!r}")
        return ConstantNode(value, dtype=self.dtype)

    def _symbol(self, name: str) -> Node:
        if name in self.variable_names:
            return FeatureNode(self.variable_names.index(name) + 1)
        raise ValueError(f"Unknown variable '{name}'; expected one of {list(self.variable_names)}")

    def _find_binop(self, name: str) -> Optional[int]:
        op = self.operators.find_binop(name)
        for alias in INFIX_ALIASES.get(name, ()):
            if op is not None:
                break
            op = self.operators.find_binop(alias)
        return op

    def _unary_op(self, node: ast.UnaryOp) -> Node:
        if isinstance(node.op, ast.UAdd):
            return self.build(node.operand)
        if not isinstance(node.op, ast.USub):
            raise ValueError(f"Unsupported unary operator: {type(node.op).__name__}")
        if isinstance(node.operand, ast.Constant):
            leaf = self._constant(node.operand.value)
            leaf.val = -leaf.val
            return leaf
        op = self.operators.find_unaop('neg')
        if op is None:
            raise ValueError("Unary minus needs a 'neg' operator in the table")
        return UnaryOpNode(op, self.build(node.operand))

    def _binary_op(self, node: ast.BinOp) -> Node:
        name = INFIX_OPERATORS.get(type(node.op))
        op = self._find_binop(name) if name is not None else None
        if op is None:
            raise self._unknown(name or type(node.op).__name__, 2)
        return BinaryOpNode(op, self.build(node.left), self.build(node.right))

    def _call(self, node: ast.Call) -> Node:
        if not isinstance(node.func, ast.Name) or node.keywords:
            raise ValueError("Only plain calls like f(a, b) are supported")
        name = node.func.id
        args = node.args

        if name in self.evaluate_on:
            result = self.evaluate_on[name](*[self.build(a) for a in args])
            if isinstance(result, Node):
                return result
            return self._constant(float(result))

        if len(args) == 1:
            op = self.operators.find_unaop(name)
            if op is not None:
                return UnaryOpNode(op, self.build(args[0]))
        elif len(args) == 2 or (len(args) > 2 and name in VARIADIC_NAMES):
            op = self._find_binop(name)
            if op is not None:
                # Extra arguments fold to the left: f(a, b, c) -> f(f(a, b), c)
                inner = BinaryOpNode(op, self.build(args[0]), self.build(args[1]))
                for arg in args[2:]:
                    inner = BinaryOpNode(op, inner, self.build(arg))
                return inner
        raise self._unknown(name, len(args))

    def _unknown(self, name: str, n_args: int) -> ValueError:
        if n_args == 1:
            available = f"unary operators {list(self.operators.unaop_names)}"
        elif n_args >= 2:
            available = f"binary operators {list(self.operators.binop_names)}"
        else:
            available = "no zero-argument operators"
        if self.evaluate_on:
            available += f" or external functions {list(self.evaluate_on)}"
        return ValueError(f"Unrecognized operator: '{name}' with no matches in {available}. "
                          "If you meant to call an external function, pass it in evaluate_on.")
