"""Expression Tree Module

Expression trees, operator tables, evaluation and forward-mode
differentiation.
"""

from .core.operators import (
    OperatorTable,
    build_operator_table,
    AutodiffDisabledError,
    OperatorIndexError,
    bind_node_operators
)
from .core.node import (
    Node,
    ConstantNode,
    FeatureNode,
    UnaryOpNode,
    BinaryOpNode
)
from .expression import Expression
from .parse import parse_expression
from .evaluation import (
    eval_tree_array,
    eval_diff_tree_array,
    eval_grad_tree_array,
    differentiate,
    gradient,
    is_bad_array
)
from .utils import (
    NodeIndex, index_constants, count_constants, count_nodes, count_depth,
    get_constants, set_constants, tree_dtype, convert_tree, ExpressionValidator,
    apply_operator, node_function
)

__all__ = [
    "OperatorTable", "build_operator_table", "AutodiffDisabledError", "OperatorIndexError", "bind_node_operators",
    "Node", "ConstantNode", "FeatureNode", "UnaryOpNode", "BinaryOpNode",
    "Expression", "parse_expression",
    "eval_tree_array", "eval_diff_tree_array", "eval_grad_tree_array",
    "differentiate", "gradient", "is_bad_array",
    "NodeIndex", "index_constants", "count_constants", "count_nodes", "count_depth",
    "get_constants", "set_constants", "tree_dtype", "convert_tree", "ExpressionValidator",
    "apply_operator", "node_function"
]
