from typing import Optional, Tuple

from .node import Node, ConstantNode, chain
from .operators import (
  OperatorName, CurvatureType, MonotonicityType, BINARY_OP_TABLE, BinaryOpSpec,
  flip_monotonicity, negate_curvature, add_monotonicity, add_curvature,
  scale_monotonicity, scale_curvature
)
from ..optimization.buffer_pool import resolve_pool


def ad_symmetric_common2(a: Node, b: Node, derivative, derivative2, directions, S,
                         intermediates=None, memo=None):
  """Symmetric second order sweep through f(a, b).

  Tangents and gradients of both arguments are combined with the first
  order partials; the Hessian adds the second order partials contracted
  with the argument tangents.
  """
  from .factory import my_add, my_prod

  fa, fb = derivative
  faa, fab, fbb = derivative2
  dxa, grad_a, h_a = a.symmetric_sweep(directions, S, intermediates, memo)
  dxb, grad_b, h_b = b.symmetric_sweep(directions, S, intermediates, memo)

  dim_s = len(dxa)
  dfS = [my_add(my_prod(fa, dxa[i]), my_prod(fb, dxb[i])) for i in range(dim_s)]
  df = [my_add(my_prod(fa, x), my_prod(fb, y)) for x, y in zip(grad_a, grad_b)]

  H = [[None] * dim_s for _ in range(dim_s)]
  for i in range(dim_s):
    for j in range(i + 1):
      local = my_add(
        my_add(my_prod(faa, my_prod(dxa[i], dxa[j])),
               my_prod(fab, my_add(my_prod(dxa[i], dxb[j]), my_prod(dxb[i], dxa[j])))),
        my_prod(fbb, my_prod(dxb[i], dxb[j])))
      h = my_add(my_add(my_prod(fa, h_a[i][j]), my_prod(fb, h_b[i][j])), local)
      H[i][j] = h
      H[j][i] = h
  return dfS, df, H


class BinaryOpNode(Node):
  """Arithmetic operator or general power of two arguments"""

  __slots__ = ('_op', 'argument1', 'argument2')

  buffer_fields = ('argument1', 'argument2', 'dargument1', 'dargument2')

  def __init__(self, operator_name: OperatorName, argument1: Node, argument2: Node):
    if operator_name not in BINARY_OP_TABLE:
      raise ValueError(f"{operator_name!r} is not a binary operator")
    super().__init__()
    self._op = OperatorName(operator_name)
    self.argument1 = argument1
    self.argument2 = argument2
    self._constant = argument1.is_constant() and argument2.is_constant()

  @property
  def spec(self) -> BinaryOpSpec:
    return BINARY_OP_TABLE[self._op]

  def get_name(self) -> OperatorName:
    return self._op

  def children(self) -> Tuple[Node, ...]:
    return (self.argument1, self.argument2)

  def _copy_node(self) -> Node:
    return BinaryOpNode(self._op, self.argument1, self.argument2)

  def _compute_hash(self) -> int:
    return hash((self._op, hash(self.argument1), hash(self.argument2)))

  def to_string(self) -> str:
    a = self.argument1.to_string()
    b = self.argument2.to_string()
    if self.spec.symbol is None:
      return f"(pow({a},{b}))"
    return f"({a}{self.spec.symbol}{b})"

  def get_value(self) -> Optional[float]:
    a = self.argument1.get_value()
    b = self.argument2.get_value()
    if a is None or b is None:
      return None
    if self._op == OperatorName.QUOTIENT and b == 0.0:
      return None
    if self._op == OperatorName.POWER and a < 0.0 and not float(b).is_integer():
      return None
    return float(self.spec.partials(a, b)[0])

  def evaluate_with(self, visitor):
    return getattr(visitor, self.spec.visitor_method)(self.argument1, self.argument2)

  # -- numeric ---------------------------------------------------------

  def _evaluate(self, slot, x, buffers, memo) -> float:
    buf = resolve_pool(buffers).reserve(self, slot)
    a = self.argument1.evaluate(slot, x, buffers, memo)
    b = self.argument2.evaluate(slot, x, buffers, memo)
    buf['argument1'][slot] = a
    buf['argument2'][slot] = b
    f = self.spec.partials(a, b)[0]
    return self._checked(f, (a, b), slot)

  def _ad_forward(self, slot, x, seed, buffers, memo):
    buf = resolve_pool(buffers).reserve(self, slot)
    a, da = self.argument1.ad_forward(slot, x, seed, buffers, memo)
    b, db = self.argument2.ad_forward(slot, x, seed, buffers, memo)
    buf['argument1'][slot] = a
    buf['argument2'][slot] = b
    buf['dargument1'][slot] = da
    buf['dargument2'][slot] = db
    f, fa, fb, _, _, _ = self.spec.partials(a, b)
    return self._checked(f, (a, b), slot), self._checked(chain(fa, da) + chain(fb, db), (a, b), slot)

  def _ad_forward_buffered(self, slot, seed, buffers, memo) -> float:
    buf = resolve_pool(buffers).reserve(self, slot)
    da = self.argument1.ad_forward_buffered(slot, seed, buffers, memo)
    db = self.argument2.ad_forward_buffered(slot, seed, buffers, memo)
    buf['dargument1'][slot] = da
    buf['dargument2'][slot] = db
    a, b = float(buf['argument1'][slot]), float(buf['argument2'][slot])
    _, fa, fb, _, _, _ = self.spec.partials(a, b)
    return self._checked(chain(fa, da) + chain(fb, db), (a, b), slot)

  def _backward_step(self, slot, seed, df, buffers):
    buf = resolve_pool(buffers).get(self)
    a, b = float(buf['argument1'][slot]), float(buf['argument2'][slot])
    _, fa, fb, _, _, _ = self.spec.partials(a, b)
    pushed = []
    # variable-free arguments receive nothing, so undefined partials never reach them
    if not self.argument1.is_constant():
      pushed.append((self.argument1, self._checked(chain(fa, seed), (a, b), slot)))
    if not self.argument2.is_constant():
      pushed.append((self.argument2, self._checked(chain(fb, seed), (a, b), slot)))
    return pushed

  def _ad_forward2(self, slot, seed, dseed, buffers, memo):
    buf = resolve_pool(buffers).get(self)
    a, b = float(buf['argument1'][slot]), float(buf['argument2'][slot])
    da1, db1 = float(buf['dargument1'][slot]), float(buf['dargument2'][slot])
    da2, dda = self.argument1.ad_forward2(slot, seed, dseed, buffers, memo)
    db2, ddb = self.argument2.ad_forward2(slot, seed, dseed, buffers, memo)
    _, fa, fb, faa, fab, fbb = self.spec.partials(a, b)
    df = chain(fa, da2) + chain(fb, db2)
    ddf = (chain(fa, dda) + chain(fb, ddb)
           + chain(faa, da1 * da2)
           + chain(fab, da1 * db2 + db1 * da2)
           + chain(fbb, db1 * db2))
    return self._checked(df, (a, b), slot), self._checked(ddf, (a, b), slot)

  def _backward2_step(self, slot, seed1, seed2, df, ddf, buffers):
    buf = resolve_pool(buffers).get(self)
    a, b = float(buf['argument1'][slot]), float(buf['argument2'][slot])
    da1, db1 = float(buf['dargument1'][slot]), float(buf['dargument2'][slot])
    _, fa, fb, faa, fab, fbb = self.spec.partials(a, b)
    pushed = []
    if not self.argument1.is_constant():
      s1 = chain(fa, seed1)
      s2 = chain(fa, seed2) + chain(chain(faa, da1) + chain(fab, db1), seed1)
      pushed.append((self.argument1, self._checked(s1, (a, b), slot), self._checked(s2, (a, b), slot)))
    if not self.argument2.is_constant():
      s1 = chain(fb, seed1)
      s2 = chain(fb, seed2) + chain(chain(fab, da1) + chain(fbb, db1), seed1)
      pushed.append((self.argument2, self._checked(s1, (a, b), slot), self._checked(s2, (a, b), slot)))
    return pushed

  # -- symbolic --------------------------------------------------------

  def _derivative_expressions(self):
    return binary_derivatives(self._op, self.argument1, self.argument2)

  def _differentiate(self, index, memo) -> Node:
    from .factory import my_add, my_prod
    self.init_derivative()
    fa, fb = self.derivative
    da = self.argument1.differentiate(index, memo)
    db = self.argument2.differentiate(index, memo)
    return my_add(my_prod(fa, da), my_prod(fb, db))

  def _ad_forward_symbolic(self, directions, seeds, intermediates, memo) -> Node:
    from .factory import my_add, my_prod
    self.init_derivative()
    fa, fb = self.derivative
    da = self.argument1.ad_forward_symbolic(directions, seeds, intermediates, memo)
    db = self.argument2.ad_forward_symbolic(directions, seeds, intermediates, memo)
    self._register_intermediate(fa, intermediates)
    self._register_intermediate(fb, intermediates)
    return my_add(my_prod(fa, da), my_prod(fb, db))

  def _backward_symbolic_step(self, directions, seed, df, intermediates):
    from .factory import my_prod
    self.init_derivative()
    fa, fb = self.derivative
    self._register_intermediate(fa, intermediates)
    self._register_intermediate(fb, intermediates)
    return ((self.argument1, my_prod(fa, seed)), (self.argument2, my_prod(fb, seed)))

  def _symmetric_sweep(self, directions, S, intermediates, memo):
    self.init_derivative()
    for partial in self.derivative:
      self._register_intermediate(partial, intermediates)
    return ad_symmetric_common2(self.argument1, self.argument2, self.derivative, self.derivative2,
                                directions, S, intermediates, memo)

  def _substitute(self, index, sub, memo) -> Node:
    a = self.argument1.substitute(index, sub, memo)
    b = self.argument2.substitute(index, sub, memo)
    if a is self.argument1 and b is self.argument2:
      return self
    return BinaryOpNode(self._op, a, b)

  # -- classification --------------------------------------------------

  def is_linear_in(self, directions) -> bool:
    a, b = self.argument1, self.argument2
    op = self._op
    if op in (OperatorName.ADDITION, OperatorName.SUBTRACTION):
      return a.is_linear_in(directions) and b.is_linear_in(directions)
    if op == OperatorName.PRODUCT:
      if not a.is_depending_on(directions):
        return b.is_linear_in(directions)
      if not b.is_depending_on(directions):
        return a.is_linear_in(directions)
      return False
    if op == OperatorName.QUOTIENT:
      return not b.is_depending_on(directions) and a.is_linear_in(directions)
    return not a.is_depending_on(directions) and not b.is_depending_on(directions)

  def is_polynomial_in(self, directions) -> bool:
    a, b = self.argument1, self.argument2
    op = self._op
    if op in (OperatorName.ADDITION, OperatorName.SUBTRACTION, OperatorName.PRODUCT):
      return a.is_polynomial_in(directions) and b.is_polynomial_in(directions)
    if op == OperatorName.QUOTIENT:
      return not b.is_depending_on(directions) and a.is_polynomial_in(directions)
    if not b.is_depending_on(directions):
      if not a.is_depending_on(directions):
        return True
      p = b.get_value()
      return p is not None and p >= 0.0 and float(p).is_integer() and a.is_polynomial_in(directions)
    return False

  def is_rational_in(self, directions) -> bool:
    a, b = self.argument1, self.argument2
    if self._op != OperatorName.POWER:
      return a.is_rational_in(directions) and b.is_rational_in(directions)
    if not b.is_depending_on(directions):
      if not a.is_depending_on(directions):
        return True
      p = b.get_value()
      return p is not None and float(p).is_integer() and a.is_rational_in(directions)
    return False

  def _compute_monotonicity(self) -> MonotonicityType:
    a, b = self.argument1, self.argument2
    m1, m2 = a.get_monotonicity(), b.get_monotonicity()
    op = self._op
    if op == OperatorName.ADDITION:
      return add_monotonicity(m1, m2)
    if op == OperatorName.SUBTRACTION:
      return add_monotonicity(m1, flip_monotonicity(m2))
    if m1 == MonotonicityType.CONSTANT and m2 == MonotonicityType.CONSTANT:
      return MonotonicityType.CONSTANT
    if op == OperatorName.PRODUCT:
      if m1 == MonotonicityType.CONSTANT and a.get_value() is not None:
        return scale_monotonicity(m2, a.get_value())
      if m2 == MonotonicityType.CONSTANT and b.get_value() is not None:
        return scale_monotonicity(m1, b.get_value())
    if op == OperatorName.QUOTIENT:
      v = b.get_value()
      if m2 == MonotonicityType.CONSTANT and v is not None and v != 0.0:
        return scale_monotonicity(m1, v)
    return MonotonicityType.NONMONOTONIC

  def _compute_curvature(self) -> CurvatureType:
    a, b = self.argument1, self.argument2
    c1, c2 = a.get_curvature(), b.get_curvature()
    op = self._op
    if op == OperatorName.ADDITION:
      return add_curvature(c1, c2)
    if op == OperatorName.SUBTRACTION:
      return add_curvature(c1, negate_curvature(c2))
    if c1 == CurvatureType.CONSTANT and c2 == CurvatureType.CONSTANT:
      return CurvatureType.CONSTANT
    if op == OperatorName.PRODUCT:
      if c1 == CurvatureType.CONSTANT and a.get_value() is not None:
        return scale_curvature(c2, a.get_value())
      if c2 == CurvatureType.CONSTANT and b.get_value() is not None:
        return scale_curvature(c1, b.get_value())
    if op == OperatorName.QUOTIENT:
      v = b.get_value()
      if c2 == CurvatureType.CONSTANT and v is not None and v != 0.0:
        return scale_curvature(c1, v)
    return CurvatureType.NEITHER_CONVEX_NOR_CONCAVE


def binary_derivatives(op: OperatorName, a: Node, b: Node):
  """((f_a, f_b), (f_aa, f_ab, f_bb)) of op(a, b), as expressions"""
  from .factory import my_add, my_sub, my_prod, my_quotient, my_power, my_power_int, log

  zero = ConstantNode(0.0)
  if op == OperatorName.ADDITION:
    return (ConstantNode(1.0), ConstantNode(1.0)), (zero, zero, zero)
  if op == OperatorName.SUBTRACTION:
    return (ConstantNode(1.0), ConstantNode(-1.0)), (zero, zero, zero)
  if op == OperatorName.PRODUCT:
    return (b, a), (zero, ConstantNode(1.0), zero)
  if op == OperatorName.QUOTIENT:
    fa = my_power_int(b, -1)
    fb = my_prod(ConstantNode(-1.0), my_quotient(a, my_power_int(b, 2)))
    fab = my_prod(ConstantNode(-1.0), my_power_int(b, -2))
    fbb = my_prod(ConstantNode(2.0), my_quotient(a, my_power_int(b, 3)))
    return (fa, fb), (zero, fab, fbb)
  if op == OperatorName.POWER:
    one = ConstantNode(1.0)
    log_a = log(a)
    a_pow_bm1 = my_power(a, my_sub(b, one))
    fa = my_prod(b, a_pow_bm1)
    fb = my_prod(my_power(a, b), log_a)
    faa = my_prod(my_prod(b, my_sub(b, one)), my_power(a, my_sub(b, ConstantNode(2.0))))
    fab = my_prod(a_pow_bm1, my_add(one, my_prod(b, log_a)))
    fbb = my_prod(my_power(a, b), my_power_int(log_a, 2))
    return (fa, fb), (faa, fab, fbb)
  raise ValueError(f"No derivative rule for {op!r}")
