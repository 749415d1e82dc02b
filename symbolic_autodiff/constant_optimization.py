import numpy as np
from typing import Optional, Tuple

from scipy.optimize import least_squares

from .expression_tree import Expression
from .logging_system import get_logger, log_debug

# Residual used for samples where the expression cannot be evaluated
INVALID_RESIDUAL = 1e10


def optimize_constants(expression: Expression, X: np.ndarray, y: np.ndarray,
                       max_nfev: Optional[int] = None) -> Tuple[np.ndarray, bool]:
  """Fit the constants of ``expression`` to ``y`` by least squares.

  The Jacobian is the constants-mode forward gradient, so no finite
  differencing is needed. On success the fitted constants are written back
  into ``expression``; otherwise it is left untouched.
  """
  y = np.asarray(y, dtype=np.float64).reshape(-1)
  n_constants = expression.count_constants()
  if n_constants == 0:
    return np.empty(0), False

  x0 = np.asarray(expression.get_constants(), dtype=np.float64)
  work = expression.copy()

  def residuals(constants):
    work.set_constants(constants)
    values, complete = work.evaluate(X)
    if not complete:
      return np.full(y.shape[0], INVALID_RESIDUAL)
    return values - y

  def jacobian(constants):
    work.set_constants(constants)
    _, grad, complete = work.gradient(X, variable=False)
    if not complete:
      return np.zeros((y.shape[0], n_constants))
    return grad.T

  result = least_squares(residuals, x0, jac=jacobian, max_nfev=max_nfev)
  log_debug(f"least_squares on {expression.to_string()}: {result.message}")

  if result.success and np.all(np.isfinite(result.x)):
    expression.set_constants(result.x)
  get_logger().fit_summary({
    'expression': expression.to_string(),
    'cost': float(result.cost),
    'evaluations': result.nfev,
    'success': bool(result.success),
  })
  return result.x, bool(result.success)
