import math
import numpy as np
from typing import Optional, Sequence, Tuple

from ..core.node import Node, ConstantNode
from ..core.unary import PowerIntNode
from ..core.errors import DomainError
from ..optimization.buffer_pool import BufferPool
from .tree_utils import get_all_nodes, has_cycle
from ...config import get_config
from ...logging_system import log_detail, log_warning


class ExpressionValidator:

  @staticmethod
  def is_valid_expression(node: Node, points: Optional[np.ndarray] = None) -> bool:
    if not ExpressionValidator.is_structurally_valid(node):
      return False

    if points is not None:
      return ExpressionValidator._test_evaluation(node, points)

    return True

  @staticmethod
  def is_structurally_valid(node: Node) -> bool:
    """Acyclic, finite constants, integral PowerInt exponents"""
    if has_cycle(node):
      log_detail("expression graph contains a cycle")
      return False

    for n in get_all_nodes(node):
      if isinstance(n, ConstantNode) and not math.isfinite(n.value):
        return False
      if isinstance(n, PowerIntNode) and not isinstance(n.exponent, int):
        return False
    return True

  @staticmethod
  def _test_evaluation(node: Node, points: np.ndarray) -> bool:
    buffers = BufferPool()
    try:
      for slot, x in enumerate(np.atleast_2d(points)):
        node.evaluate(slot, x, buffers)
    except DomainError as e:
      log_detail(f"evaluation failed: {e}")
      return False
    return True

  @staticmethod
  def finite_difference_gradient(node: Node, x: Sequence[float], step: Optional[float] = None) -> np.ndarray:
    """Central differences of the primal value"""
    h = step if step is not None else get_config().finite_difference_step
    buffers = BufferPool()
    x = np.array(x, dtype=np.float64)
    grad = np.zeros_like(x)
    for i in range(x.shape[0]):
      xp, xm = x.copy(), x.copy()
      xp[i] += h
      xm[i] -= h
      grad[i] = (node.evaluate(0, xp, buffers) - node.evaluate(0, xm, buffers)) / (2.0 * h)
    return grad

  @staticmethod
  def check_gradient(node: Node, x: Sequence[float], step: Optional[float] = None,
                     tolerance: Optional[float] = None) -> Tuple[bool, float]:
    """Compare the reverse sweep against central differences.

    Returns (passed, max_abs_error); the error is relative to the gradient
    magnitude where that exceeds one.
    """
    tol = tolerance if tolerance is not None else get_config().derivative_tolerance
    buffers = BufferPool()
    x = np.array(x, dtype=np.float64)
    node.ad_forward(0, x, np.zeros_like(x), buffers)
    grad = np.zeros_like(x)
    node.ad_backward(0, 1.0, grad, buffers)

    approx = ExpressionValidator.finite_difference_gradient(node, x, step)
    scale = max(1.0, float(np.max(np.abs(grad))) if grad.size else 1.0)
    error = float(np.max(np.abs(grad - approx))) / scale if grad.size else 0.0
    if error > tol:
      log_warning(f"gradient check failed: error {error:.3e} > {tol:.1e}")
    return error <= tol, error
