# Python

"""Symbolic Autodiff Package

Evaluation and forward-mode differentiation of small expression trees over
batches of samples.
"""

from .logging_system import LogLevel, configure_logging, get_logger, set_log_level
from .config import EngineConfig, get_config, set_config
from .expression_tree import (
  OperatorTable, build_operator_table, AutodiffDisabledError, OperatorIndexError,
  Node, ConstantNode, FeatureNode, UnaryOpNode, BinaryOpNode,
  Expression, parse_expression,
  eval_tree_array, eval_diff_tree_array, eval_grad_tree_array,
  differentiate, gradient, is_bad_array,
  NodeIndex, index_constants, count_constants, get_constants, set_constants,
  node_function, bind_node_operators
)
from .constant_optimization import optimize_constants

__version__ = "0.1.0"
__all__ = [
  "LogLevel", "configure_logging", "get_logger", "set_log_level",
  "EngineConfig", "get_config", "set_config",
  "OperatorTable", "build_operator_table", "AutodiffDisabledError", "OperatorIndexError",
  "Node", "ConstantNode", "FeatureNode", "UnaryOpNode", "BinaryOpNode",
  "Expression", "parse_expression",
  "eval_tree_array", "eval_diff_tree_array", "eval_grad_tree_array",
  "differentiate", "gradient", "is_bad_array",
  "NodeIndex", "index_constants", "count_constants", "get_constants", "set_constants",
  "node_function", "bind_node_operators",
  "optimize_constants"
]
