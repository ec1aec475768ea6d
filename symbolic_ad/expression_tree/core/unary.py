import math
from abc import abstractmethod
from typing import Optional, Tuple

from .node import Node, ConstantNode, chain
from .operators import (
  OperatorName, CurvatureType, MonotonicityType, UNARY_OP_TABLE, UnaryOpSpec,
  power_int_kernel, compose_monotonicity, compose_curvature
)
from .errors import DomainError
from ..optimization.buffer_pool import resolve_pool


def ad_symmetric_common(argument: Node, d: Node, dd: Node, directions, S, intermediates=None, memo=None):
  """Symmetric second order sweep through f(argument).

  The argument's tangents, gradient and projected Hessian are scaled by f';
  the curvature term f''*dx*dx^T completes the Hessian. Entries (i, j) and
  (j, i) share one expression node.
  """
  from .factory import my_add, my_prod

  dx, grad, h_inner = argument.symmetric_sweep(directions, S, intermediates, memo)
  dim_s = len(dx)
  dfS = [my_prod(d, dx_i) for dx_i in dx]
  df = [my_prod(d, g) for g in grad]
  H = [[None] * dim_s for _ in range(dim_s)]
  for i in range(dim_s):
    for j in range(i + 1):
      h = my_add(my_prod(d, h_inner[i][j]), my_prod(dd, my_prod(dx[i], dx[j])))
      H[i][j] = h
      H[j][i] = h
  return dfS, df, H


class SmoothOperator(Node):
  """Twice differentiable function of a single argument.

  Subclasses provide the local value and derivatives; the numeric sweeps,
  the symbolic transforms and the buffering live here.
  """

  __slots__ = ('argument',)

  buffer_fields = ('argument', 'dargument')

  def __init__(self, argument: Node):
    super().__init__()
    self.argument = argument
    self._constant = argument.is_constant()

  def children(self) -> Tuple[Node, ...]:
    return (self.argument,)

  @abstractmethod
  def _local(self, a: float, slot: Optional[int]) -> Tuple[float, float, float]:
    """(f, f', f'') at argument value a; raises DomainError off the domain"""
    pass

  @abstractmethod
  def _rebuild(self, argument: Node) -> Node:
    """Same operator applied to another argument"""
    pass

  def _copy_node(self) -> Node:
    return self._rebuild(self.argument)

  # -- numeric ---------------------------------------------------------

  def _evaluate(self, slot, x, buffers, memo) -> float:
    buf = resolve_pool(buffers).reserve(self, slot)
    a = self.argument.evaluate(slot, x, buffers, memo)
    buf['argument'][slot] = a
    f, _, _ = self._local(a, slot)
    return self._checked(f, a, slot)

  def _ad_forward(self, slot, x, seed, buffers, memo):
    buf = resolve_pool(buffers).reserve(self, slot)
    a, da = self.argument.ad_forward(slot, x, seed, buffers, memo)
    buf['argument'][slot] = a
    buf['dargument'][slot] = da
    f, d, _ = self._local(a, slot)
    return self._checked(f, a, slot), self._checked(chain(d, da), a, slot)

  def _ad_forward_buffered(self, slot, seed, buffers, memo) -> float:
    buf = resolve_pool(buffers).reserve(self, slot)
    da = self.argument.ad_forward_buffered(slot, seed, buffers, memo)
    buf['dargument'][slot] = da
    a = float(buf['argument'][slot])
    _, d, _ = self._local(a, slot)
    return self._checked(chain(d, da), a, slot)

  def _backward_step(self, slot, seed, df, buffers):
    a = float(resolve_pool(buffers).get(self)['argument'][slot])
    _, d, _ = self._local(a, slot)
    return ((self.argument, self._checked(chain(d, seed), a, slot)),)

  def _ad_forward2(self, slot, seed, dseed, buffers, memo):
    buf = resolve_pool(buffers).get(self)
    a = float(buf['argument'][slot])
    da1 = float(buf['dargument'][slot])
    da2, dda = self.argument.ad_forward2(slot, seed, dseed, buffers, memo)
    _, d, dd = self._local(a, slot)
    df = chain(d, da2)
    ddf = chain(d, dda) + chain(dd, da1 * da2)
    return self._checked(df, a, slot), self._checked(ddf, a, slot)

  def _backward2_step(self, slot, seed1, seed2, df, ddf, buffers):
    buf = resolve_pool(buffers).get(self)
    a = float(buf['argument'][slot])
    da1 = float(buf['dargument'][slot])
    _, d, dd = self._local(a, slot)
    s1 = self._checked(chain(d, seed1), a, slot)
    s2 = self._checked(chain(d, seed2) + chain(dd, seed1 * da1), a, slot)
    return ((self.argument, s1, s2),)

  # -- symbolic --------------------------------------------------------

  def _differentiate(self, index, memo) -> Node:
    from .factory import my_prod
    self.init_derivative()
    return my_prod(self.derivative, self.argument.differentiate(index, memo))

  def _ad_forward_symbolic(self, directions, seeds, intermediates, memo) -> Node:
    from .factory import my_prod
    self.init_derivative()
    da = self.argument.ad_forward_symbolic(directions, seeds, intermediates, memo)
    self._register_intermediate(self.derivative, intermediates)
    return my_prod(self.derivative, da)

  def _backward_symbolic_step(self, directions, seed, df, intermediates):
    from .factory import my_prod
    self.init_derivative()
    self._register_intermediate(self.derivative, intermediates)
    return ((self.argument, my_prod(self.derivative, seed)),)

  def _symmetric_sweep(self, directions, S, intermediates, memo):
    self.init_derivative()
    self._register_intermediate(self.derivative, intermediates)
    return ad_symmetric_common(self.argument, self.derivative, self.derivative2,
                               directions, S, intermediates, memo)

  def _substitute(self, index, sub, memo) -> Node:
    argument = self.argument.substitute(index, sub, memo)
    if argument is self.argument:
      return self
    return self._rebuild(argument)


class UnaryOpNode(SmoothOperator):
  """Elementary function of one argument, driven by UNARY_OP_TABLE"""

  __slots__ = ('_op',)

  def __init__(self, operator_name: OperatorName, argument: Node):
    if operator_name not in UNARY_OP_TABLE:
      raise ValueError(f"{operator_name!r} is not a unary operator")
    super().__init__(argument)
    self._op = OperatorName(operator_name)

  @property
  def spec(self) -> UnaryOpSpec:
    return UNARY_OP_TABLE[self._op]

  def get_name(self) -> OperatorName:
    return self._op

  def _rebuild(self, argument: Node) -> Node:
    return UnaryOpNode(self._op, argument)

  def _compute_hash(self) -> int:
    return hash((self._op, hash(self.argument)))

  def to_string(self) -> str:
    return f"({self.spec.name}({self.argument.to_string()}))"

  def get_value(self) -> Optional[float]:
    a = self.argument.get_value()
    if a is None or not self.spec.domain(a):
      return None
    return float(self.spec.fcn(a))

  def evaluate_with(self, visitor):
    return getattr(visitor, self.spec.visitor_method)(self.argument)

  def _local(self, a, slot):
    spec = self.spec
    if not spec.domain(a):
      raise DomainError(self._op, a, slot)
    return spec.fcn(a), spec.dfcn(a), spec.ddfcn(a)

  def _derivative_expressions(self):
    return unary_derivatives(self._op, self.argument)

  def is_linear_in(self, directions) -> bool:
    return not self.argument.is_depending_on(directions)

  def is_polynomial_in(self, directions) -> bool:
    return not self.argument.is_depending_on(directions)

  def is_rational_in(self, directions) -> bool:
    return not self.argument.is_depending_on(directions)

  def _compute_monotonicity(self) -> MonotonicityType:
    return compose_monotonicity(self.spec.monotonicity, self.argument.get_monotonicity())

  def _compute_curvature(self) -> CurvatureType:
    return compose_curvature(self.spec.curvature, self.spec.monotonicity, self.argument.get_curvature())


def unary_derivatives(op: OperatorName, a: Node) -> Tuple[Node, Node]:
  """First and second derivative of op(a) w.r.t. a, as expressions"""
  from .factory import (
    my_add, my_sub, my_prod, my_quotient, my_power, my_power_int, sin, cos, exp
  )

  if op == OperatorName.SIN:
    return cos(a), my_prod(ConstantNode(-1.0), sin(a))
  if op == OperatorName.COS:
    return my_prod(ConstantNode(-1.0), sin(a)), my_prod(ConstantNode(-1.0), cos(a))
  if op == OperatorName.TAN:
    sec2 = my_power_int(cos(a), -2)
    return sec2, my_prod(my_prod(ConstantNode(2.0), sin(a)), my_power_int(cos(a), -3))
  if op in (OperatorName.ASIN, OperatorName.ACOS):
    one_minus_a2 = my_sub(ConstantNode(1.0), my_power_int(a, 2))
    d = my_power(one_minus_a2, ConstantNode(-0.5))
    dd = my_prod(my_power(one_minus_a2, ConstantNode(-1.5)), a)
    if op == OperatorName.ACOS:
      return my_prod(ConstantNode(-1.0), d), my_prod(ConstantNode(-1.0), dd)
    return d, dd
  if op == OperatorName.ATAN:
    denom = my_add(ConstantNode(1.0), my_power_int(a, 2))
    return (my_power_int(denom, -1),
            my_quotient(my_prod(ConstantNode(-2.0), a), my_power_int(denom, 2)))
  if op == OperatorName.EXP:
    e = exp(a)
    return e, e
  if op == OperatorName.LOGARITHM:
    return my_power_int(a, -1), my_prod(ConstantNode(-1.0), my_power_int(a, -2))
  raise ValueError(f"No derivative rule for {op!r}")


class PowerIntNode(SmoothOperator):
  """argument ** exponent for a fixed integer exponent (possibly zero or negative)"""

  __slots__ = ('exponent',)

  def __init__(self, argument: Node, exponent: int):
    if isinstance(exponent, bool) or not float(exponent).is_integer():
      raise TypeError(f"PowerInt exponent must be an integer, got {exponent!r}")
    super().__init__(argument)
    self.exponent = int(exponent)
    if self.exponent == 0:
      self._constant = True

  def get_name(self) -> OperatorName:
    return OperatorName.POWER_INT

  def _rebuild(self, argument: Node) -> Node:
    return PowerIntNode(argument, self.exponent)

  def _compute_hash(self) -> int:
    return hash((OperatorName.POWER_INT, hash(self.argument), self.exponent))

  def to_string(self) -> str:
    arg = self.argument.to_string()
    if self.exponent == 1:
      return f"({arg})"
    if self.exponent == 2 and self.argument.is_variable() is not None:
      return f"(({arg})*({arg}))"
    return f"(pow({arg},{self.exponent}))"

  def get_value(self) -> Optional[float]:
    if self.exponent == 0:
      return 1.0
    a = self.argument.get_value()
    if a is None or (a == 0.0 and self.exponent < 0):
      return None
    return float(a ** self.exponent)

  def evaluate_with(self, visitor):
    return visitor.power_int(self.argument, self.exponent)

  def _local(self, a, slot):
    n = self.exponent
    if n != 0 and not math.isfinite(a):
      raise DomainError(OperatorName.POWER_INT, a, slot)
    return power_int_kernel(a, n)

  def _derivative_expressions(self):
    from .factory import my_prod, my_power_int
    n = self.exponent
    d = my_prod(ConstantNode(float(n)), my_power_int(self.argument, n - 1))
    dd = my_prod(ConstantNode(float(n * (n - 1))), my_power_int(self.argument, n - 2))
    return d, dd

  # x**0 is 1 whatever the argument, so the argument is not swept at all

  def _evaluate(self, slot, x, buffers, memo) -> float:
    if self.exponent == 0:
      return 1.0
    return super()._evaluate(slot, x, buffers, memo)

  def _ad_forward(self, slot, x, seed, buffers, memo):
    if self.exponent == 0:
      return 1.0, 0.0
    return super()._ad_forward(slot, x, seed, buffers, memo)

  def _ad_forward_buffered(self, slot, seed, buffers, memo) -> float:
    if self.exponent == 0:
      return 0.0
    return super()._ad_forward_buffered(slot, seed, buffers, memo)

  def _backward_step(self, slot, seed, df, buffers):
    if self.exponent == 0:
      return ()
    return super()._backward_step(slot, seed, df, buffers)

  def _ad_forward2(self, slot, seed, dseed, buffers, memo):
    if self.exponent == 0:
      return 0.0, 0.0
    return super()._ad_forward2(slot, seed, dseed, buffers, memo)

  def _backward2_step(self, slot, seed1, seed2, df, ddf, buffers):
    if self.exponent == 0:
      return ()
    return super()._backward2_step(slot, seed1, seed2, df, ddf, buffers)

  def is_depending_on_type(self, var_type) -> bool:
    if self.exponent == 0:
      return False
    return self.argument.is_depending_on_type(var_type)

  def is_depending_on(self, directions) -> bool:
    if self.exponent == 0:
      return False
    return self.argument.is_depending_on(directions)

  def is_linear_in(self, directions) -> bool:
    if self.exponent == 0:
      return True
    return self.exponent == 1 and self.argument.is_linear_in(directions)

  def is_polynomial_in(self, directions) -> bool:
    return self.exponent >= 0 and self.argument.is_polynomial_in(directions)

  def is_rational_in(self, directions) -> bool:
    return self.argument.is_rational_in(directions)

  def _compute_monotonicity(self) -> MonotonicityType:
    m = self.argument.get_monotonicity()
    if m == MonotonicityType.CONSTANT:
      return MonotonicityType.CONSTANT
    n = self.exponent
    if n % 2 == 0:
      return MonotonicityType.CONSTANT if n == 0 else MonotonicityType.NONMONOTONIC
    return m if n > 0 else MonotonicityType.NONMONOTONIC

  def _compute_curvature(self) -> CurvatureType:
    c = self.argument.get_curvature()
    if c == CurvatureType.CONSTANT:
      return CurvatureType.CONSTANT
    n = self.exponent
    if n % 2 == 0:
      if n < 0:
        return CurvatureType.NEITHER_CONVEX_NOR_CONCAVE
      if n == 0:
        return CurvatureType.CONSTANT
      return CurvatureType.CONVEX if c == CurvatureType.AFFINE else CurvatureType.NEITHER_CONVEX_NOR_CONCAVE
    return c if n == 1 else CurvatureType.NEITHER_CONVEX_NOR_CONCAVE
