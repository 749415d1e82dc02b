"""Value-only evaluation and forward-mode differentiation."""

from .evaluate import (
    eval_tree_array, deg0_eval, evaluate_feature, evaluate_constant,
    is_bad_array, promote_inputs
)
from .derivative import (
    eval_diff_tree_array, eval_grad_tree_array, differentiate, gradient, GRADIENT_MODES
)

__all__ = [
    'eval_tree_array', 'deg0_eval', 'evaluate_feature', 'evaluate_constant',
    'is_bad_array', 'promote_inputs',
    'eval_diff_tree_array', 'eval_grad_tree_array', 'differentiate', 'gradient',
    'GRADIENT_MODES'
]
