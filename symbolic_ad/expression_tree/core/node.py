import math
import numpy as np
from abc import ABC, abstractmethod
from typing import Dict, IO, List, Optional, Sequence, Tuple, TYPE_CHECKING

from .operators import (
  OperatorName, NeutralElement, CurvatureType, MonotonicityType, VariableType,
  VARIABLE_PREFIXES
)
from .errors import DomainError
from ..optimization.buffer_pool import BufferPool, resolve_pool
from ...config import get_config
from ...logging_system import log_debug

if TYPE_CHECKING:
  from .evaluation_base import EvaluationBase
  from ..utils.index_list import SymbolicIndexList

# A differentiation direction: which variable, by kind and component
Direction = Tuple[VariableType, int]


def chain(partial: float, d: float) -> float:
  """partial * d, exactly zero when the seed is zero even if the partial is not finite"""
  if d == 0.0:
    return 0.0
  return partial * d


def seed_dimension(directions: Sequence[Direction], S: Sequence[Sequence['Node']]) -> int:
  """Number of forward seed columns of a symmetric sweep"""
  if len(S) != len(directions):
    raise ValueError(f"seed matrix has {len(S)} rows for {len(directions)} directions")
  if not S:
    return 0
  dim_s = len(S[0])
  if any(len(row) != dim_s for row in S):
    raise ValueError("seed matrix rows differ in length")
  return dim_s


class IntermediateCollector:
  """Appends non-constant expressions to a caller's list, each node at most once"""

  __slots__ = ('items', '_seen')

  def __init__(self, items: List['Node']):
    self.items = items
    self._seen = {id(expr) for expr in items}

  def add(self, expr: 'Node'):
    if expr.is_constant() or id(expr) in self._seen:
      return
    self._seen.add(id(expr))
    self.items.append(expr)


def zero_sweep(directions, S):
  """Symmetric sweep result of a variable-free node"""
  zero = ConstantNode(0.0)
  dim_s = len(S[0]) if S else 0
  return [zero] * dim_s, [zero] * len(directions), [[zero] * dim_s for _ in range(dim_s)]


def collect_into(intermediates) -> Optional[IntermediateCollector]:
  if intermediates is None or isinstance(intermediates, IntermediateCollector):
    return intermediates
  return IntermediateCollector(intermediates)


class Node(ABC):
  """Base class of every operator node in an expression DAG.

  Children are shared by reference, so one node may have several parents.
  Only the classification caches, the derivative caches and the index
  wiring of variables are mutable; the algebraic meaning never changes.
  """

  __slots__ = ('_hash_cache', '_curvature', '_monotonicity', '_constant',
               'derivative', 'derivative2', '__weakref__')

  # names of the per-slot arrays kept in the evaluation context
  buffer_fields: Tuple[str, ...] = ()

  def __init__(self):
    self._hash_cache: Optional[int] = None
    self._curvature = CurvatureType.UNKNOWN
    self._monotonicity = MonotonicityType.UNKNOWN
    self._constant = False
    self.derivative = None
    self.derivative2 = None

  # ------------------------------------------------------------------
  # structure
  # ------------------------------------------------------------------

  @abstractmethod
  def get_name(self) -> OperatorName:
    pass

  @property
  def operator_name(self) -> OperatorName:
    return self.get_name()

  def children(self) -> Tuple['Node', ...]:
    return ()

  def is_constant(self) -> bool:
    """True when the node does not depend on any variable"""
    return self._constant

  def is_variable(self) -> Optional[Direction]:
    return None

  def is_one_or_zero(self) -> NeutralElement:
    return NeutralElement.NEITHER_ONE_NOR_ZERO

  def is_symbolic(self) -> bool:
    return all(child.is_symbolic() for child in self.children())

  @abstractmethod
  def get_value(self) -> Optional[float]:
    """Value of a variable-free subtree, None otherwise"""
    pass

  def size(self) -> int:
    """Number of distinct nodes in the DAG"""
    from ..utils.tree_utils import get_all_nodes
    return len(get_all_nodes(self))

  def copy(self, buffers: Optional[BufferPool] = None) -> 'Node':
    """Duplicate this node; children are shared, not copied"""
    other = self._copy_node()
    other._curvature = self._curvature
    other._monotonicity = self._monotonicity
    other.derivative = self.derivative
    other.derivative2 = self.derivative2
    resolve_pool(buffers).clone(self, other)
    return other

  @abstractmethod
  def _copy_node(self) -> 'Node':
    pass

  def __hash__(self) -> int:
    if self._hash_cache is None:
      self._hash_cache = self._compute_hash()
    return self._hash_cache

  @abstractmethod
  def _compute_hash(self) -> int:
    pass

  # ------------------------------------------------------------------
  # printing
  # ------------------------------------------------------------------

  @abstractmethod
  def to_string(self) -> str:
    pass

  def write(self, stream: IO[str]) -> IO[str]:
    stream.write(self.to_string())
    return stream

  def __str__(self) -> str:
    return self.to_string()

  def __repr__(self) -> str:
    return f"{type(self).__name__}({self.to_string()})"

  # ------------------------------------------------------------------
  # classification
  # ------------------------------------------------------------------

  def is_depending_on_type(self, var_type: VariableType) -> bool:
    return any(child.is_depending_on_type(var_type) for child in self.children())

  def is_depending_on(self, directions: Sequence[Direction]) -> bool:
    return any(child.is_depending_on(directions) for child in self.children())

  @abstractmethod
  def is_linear_in(self, directions: Sequence[Direction]) -> bool:
    pass

  @abstractmethod
  def is_polynomial_in(self, directions: Sequence[Direction]) -> bool:
    pass

  @abstractmethod
  def is_rational_in(self, directions: Sequence[Direction]) -> bool:
    pass

  def get_monotonicity(self) -> MonotonicityType:
    if self._monotonicity == MonotonicityType.UNKNOWN:
      self._monotonicity = self._compute_monotonicity()
    return self._monotonicity

  def get_curvature(self) -> CurvatureType:
    if self._curvature == CurvatureType.UNKNOWN:
      self._curvature = self._compute_curvature()
    return self._curvature

  def set_monotonicity(self, monotonicity: MonotonicityType):
    self._monotonicity = monotonicity

  def set_curvature(self, curvature: CurvatureType):
    self._curvature = curvature

  @abstractmethod
  def _compute_monotonicity(self) -> MonotonicityType:
    pass

  @abstractmethod
  def _compute_curvature(self) -> CurvatureType:
    pass

  # ------------------------------------------------------------------
  # variable registration
  # ------------------------------------------------------------------

  def enumerate_variables(self, index_list: 'SymbolicIndexList'):
    already_present = index_list.add_new_node(self)
    if already_present:
      return
    for child in self.children():
      child.enumerate_variables(index_list)

  def load_indices(self, index_list: 'SymbolicIndexList'):
    already_present = index_list.add_new_node(self)
    if already_present:
      return
    for child in self.children():
      child.load_indices(index_list)

  # ------------------------------------------------------------------
  # symbolic differentiation
  # ------------------------------------------------------------------

  def _derivatives_ready(self) -> bool:
    return self.derivative is not None and self.derivative2 is not None

  def _derivative_expressions(self) -> Tuple[object, object]:
    """Build (derivative, derivative2) w.r.t. the arguments of this node"""
    return None, None

  def init_derivative(self):
    """Populate the derivative caches of the whole subtree.

    Nodes are visited children first; all missing derivative expressions are
    built before any of them is attached. Nodes that already carry their
    caches are left untouched, so repeated calls are no-ops.
    """
    if self._derivatives_ready():
      return
    from ..utils.tree_utils import topological_order

    pending = [node for node in topological_order(self) if not node._derivatives_ready()]
    built = [node._derivative_expressions() for node in pending]
    for node, (d, dd) in zip(pending, built):
      node.derivative = d
      node.derivative2 = dd
    log_debug(f"derivative caches built for {len(pending)} nodes below {self.get_name().name}")

  def _once(self, memo: Optional[Dict[int, object]], compute, *args):
    """compute(*args, memo) at most once per node and pass"""
    if memo is None:
      memo = {}
    key = id(self)
    if key not in memo:
      memo[key] = compute(*args, memo)
    return memo[key]

  def differentiate(self, index: int, memo: Optional[Dict[int, 'Node']] = None) -> 'Node':
    """Expression for d(self)/d(var[index])"""
    if self.is_constant():
      return ConstantNode(0.0)
    return self._once(memo, self._differentiate, index)

  @abstractmethod
  def _differentiate(self, index: int, memo: Dict[int, 'Node']) -> 'Node':
    pass

  def ad_forward_symbolic(self, directions: Sequence[Direction], seeds: Sequence['Node'],
                          intermediates=None, memo: Optional[Dict[int, 'Node']] = None) -> 'Node':
    """Expression of the directional derivative along the symbolic seed"""
    if len(seeds) != len(directions):
      raise ValueError(f"{len(seeds)} seeds given for {len(directions)} directions")
    if self.is_constant():
      return ConstantNode(0.0)
    return self._once(memo, self._ad_forward_symbolic, directions, seeds, collect_into(intermediates))

  @abstractmethod
  def _ad_forward_symbolic(self, directions, seeds, intermediates, memo) -> 'Node':
    pass

  def ad_backward_symbolic(self, directions: Sequence[Direction], seed: 'Node', df: List['Node'],
                           intermediates=None):
    """Accumulate seed * d(self)/d(direction) into df[direction] as expressions.

    Adjoint expressions are summed per node and pushed in reverse topological
    order, so a shared node is swept once whatever its number of parents.
    """
    from .factory import my_add

    self.init_derivative()
    collector = collect_into(intermediates)
    adjoints: Dict[int, Node] = {id(self): seed}
    for node in self._parents_first():
      adjoint = adjoints.pop(id(node), None)
      if adjoint is None or node.is_constant():
        continue
      for child, pushed in node._backward_symbolic_step(directions, adjoint, df, collector):
        key = id(child)
        adjoints[key] = my_add(adjoints[key], pushed) if key in adjoints else pushed

  @abstractmethod
  def _backward_symbolic_step(self, directions, seed: 'Node', df: List['Node'], intermediates):
    """Adjoint expressions of the children, given the adjoint of this node"""
    pass

  def ad_symmetric(self, directions: Sequence[Direction], l: 'Node', S: Sequence[Sequence['Node']],
                   intermediates=None) -> Tuple[List['Node'], List['Node'], List[List['Node']]]:
    """Combined forward/backward second order sweep.

    Returns (dfS, ldf, H) with dfS[i] = grad(f) . S[:, i], ldf[k] = l * df/dx_k
    and H = S^T (l * hess(f)) S as symmetric nested lists.
    """
    from .factory import my_prod

    seed_dimension(directions, S)
    self.init_derivative()
    dfS, df, H = self.symmetric_sweep(directions, S, collect_into(intermediates))
    ldf = [my_prod(l, g) for g in df]
    dim_s = len(H)
    lH = [[None] * dim_s for _ in range(dim_s)]
    for i in range(dim_s):
      for j in range(i + 1):
        h = my_prod(l, H[i][j])
        lH[i][j] = h
        lH[j][i] = h
    return dfS, ldf, lH

  def symmetric_sweep(self, directions, S, intermediates=None, memo=None):
    """(grad . S, grad, S^T hess S) of this node, memoised per sweep"""
    if self.is_constant():
      return zero_sweep(directions, S)
    return self._once(memo, self._symmetric_sweep, directions, S, intermediates)

  @abstractmethod
  def _symmetric_sweep(self, directions, S, intermediates, memo):
    pass

  def substitute(self, index: int, sub: 'Node', memo: Optional[Dict[int, 'Node']] = None) -> 'Node':
    """Replace variable `index` by `sub`; unchanged subtrees are shared"""
    return self._once(memo, self._substitute, index, sub)

  @abstractmethod
  def _substitute(self, index: int, sub: 'Node', memo: Dict[int, 'Node']) -> 'Node':
    pass

  @staticmethod
  def _register_intermediate(expr: 'Node', intermediates: Optional['IntermediateCollector']):
    if intermediates is not None:
      intermediates.add(expr)

  def _parents_first(self) -> List['Node']:
    from ..utils.tree_utils import topological_order
    return topological_order(self)[::-1]

  # ------------------------------------------------------------------
  # numeric evaluation and AD
  # ------------------------------------------------------------------

  def evaluate(self, slot: int, x: Sequence[float], buffers: Optional[BufferPool] = None,
               memo: Optional[Dict[int, float]] = None) -> float:
    """Value at x; shared nodes are computed once per pass"""
    return self._once(memo, self._evaluate, slot, x, buffers)

  @abstractmethod
  def _evaluate(self, slot, x, buffers, memo) -> float:
    pass

  @abstractmethod
  def evaluate_with(self, visitor: 'EvaluationBase'):
    pass

  def ad_forward(self, slot: int, x: Sequence[float], seed: Sequence[float],
                 buffers: Optional[BufferPool] = None, memo=None) -> Tuple[float, float]:
    """Value and directional derivative; refreshes the primal buffers"""
    return self._once(memo, self._ad_forward, slot, x, seed, buffers)

  @abstractmethod
  def _ad_forward(self, slot, x, seed, buffers, memo) -> Tuple[float, float]:
    pass

  def ad_forward_buffered(self, slot: int, seed: Sequence[float],
                          buffers: Optional[BufferPool] = None, memo=None) -> float:
    """Directional derivative at the point buffered in `slot`"""
    return self._once(memo, self._ad_forward_buffered, slot, seed, buffers)

  @abstractmethod
  def _ad_forward_buffered(self, slot, seed, buffers, memo) -> float:
    pass

  def ad_backward(self, slot: int, seed: float, df: np.ndarray,
                  buffers: Optional[BufferPool] = None):
    """Accumulate seed * gradient into df; needs evaluate/ad_forward on `slot` first"""
    adjoints: Dict[int, float] = {id(self): seed}
    for node in self._parents_first():
      adjoint = adjoints.pop(id(node), None)
      if adjoint is None or node.is_constant():
        continue
      for child, pushed in node._backward_step(slot, adjoint, df, buffers):
        key = id(child)
        adjoints[key] = adjoints.get(key, 0.0) + pushed

  @abstractmethod
  def _backward_step(self, slot, seed: float, df: np.ndarray, buffers):
    """(child, seed) pairs pushed into the children"""
    pass

  def ad_forward2(self, slot: int, seed: Sequence[float], dseed: Sequence[float],
                  buffers: Optional[BufferPool] = None, memo=None) -> Tuple[float, float]:
    """Second order forward sweep on top of a buffered ad_forward"""
    return self._once(memo, self._ad_forward2, slot, seed, dseed, buffers)

  @abstractmethod
  def _ad_forward2(self, slot, seed, dseed, buffers, memo) -> Tuple[float, float]:
    pass

  def ad_backward2(self, slot: int, seed1: float, seed2: float, df: np.ndarray, ddf: np.ndarray,
                   buffers: Optional[BufferPool] = None):
    """Second order backward sweep on top of a buffered ad_forward"""
    adjoints: Dict[int, Tuple[float, float]] = {id(self): (seed1, seed2)}
    for node in self._parents_first():
      adjoint = adjoints.pop(id(node), None)
      if adjoint is None or node.is_constant():
        continue
      for child, s1, s2 in node._backward2_step(slot, adjoint[0], adjoint[1], df, ddf, buffers):
        key = id(child)
        if key in adjoints:
          t1, t2 = adjoints[key]
          adjoints[key] = (t1 + s1, t2 + s2)
        else:
          adjoints[key] = (s1, s2)

  @abstractmethod
  def _backward2_step(self, slot, seed1: float, seed2: float, df, ddf, buffers):
    """(child, seed1, seed2) triples pushed into the children"""
    pass

  def buffer_size(self, buffers: Optional[BufferPool] = None) -> int:
    return resolve_pool(buffers).get(self).size

  def clear_buffer(self, buffers: Optional[BufferPool] = None):
    resolve_pool(buffers).clear_node(self)

  def _checked(self, value: float, argument: float, slot: Optional[int]) -> float:
    if get_config().check_finite and not math.isfinite(value):
      log_debug(f"{self.get_name().name} produced {value!r} from {argument!r} at slot {slot}")
      raise DomainError(self.get_name(), argument, slot)
    return value

  # ------------------------------------------------------------------
  # construction sugar
  # ------------------------------------------------------------------

  def __add__(self, other):
    from .factory import my_add, as_node
    return my_add(self, as_node(other))

  def __radd__(self, other):
    from .factory import my_add, as_node
    return my_add(as_node(other), self)

  def __sub__(self, other):
    from .factory import my_sub, as_node
    return my_sub(self, as_node(other))

  def __rsub__(self, other):
    from .factory import my_sub, as_node
    return my_sub(as_node(other), self)

  def __mul__(self, other):
    from .factory import my_prod, as_node
    return my_prod(self, as_node(other))

  def __rmul__(self, other):
    from .factory import my_prod, as_node
    return my_prod(as_node(other), self)

  def __truediv__(self, other):
    from .factory import my_quotient, as_node
    return my_quotient(self, as_node(other))

  def __rtruediv__(self, other):
    from .factory import my_quotient, as_node
    return my_quotient(as_node(other), self)

  def __neg__(self):
    from .factory import my_prod
    return my_prod(ConstantNode(-1.0), self)

  def __pow__(self, other):
    from .factory import my_power, my_power_int, as_node
    if isinstance(other, (int, np.integer)) and not isinstance(other, bool):
      return my_power_int(self, int(other))
    return my_power(self, as_node(other))

  def __rpow__(self, other):
    from .factory import my_power, as_node
    return my_power(as_node(other), self)


class VariableNode(Node):
  __slots__ = ('var_type', 'component', 'global_index')

  def __init__(self, component: int, var_type: VariableType = VariableType.DIFFERENTIAL_STATE,
               global_index: Optional[int] = None):
    super().__init__()
    self.var_type = VariableType(var_type)
    self.component = int(component)
    self.global_index = int(global_index) if global_index is not None else self.component

  def get_name(self) -> OperatorName:
    return OperatorName.VARIABLE

  def is_variable(self) -> Optional[Direction]:
    return self.var_type, self.component

  def get_value(self) -> Optional[float]:
    return None

  def _copy_node(self) -> 'VariableNode':
    return VariableNode(self.component, self.var_type, self.global_index)

  def _compute_hash(self) -> int:
    return hash((OperatorName.VARIABLE, self.var_type, self.component))

  def to_string(self) -> str:
    return f"{VARIABLE_PREFIXES[self.var_type]}[{self.component}]"

  def _direction_index(self, directions: Sequence[Direction]) -> Optional[int]:
    for i, (var_type, component) in enumerate(directions):
      if var_type == self.var_type and component == self.component:
        return i
    return None

  def is_depending_on_type(self, var_type: VariableType) -> bool:
    return self.var_type == var_type

  def is_depending_on(self, directions: Sequence[Direction]) -> bool:
    return self._direction_index(directions) is not None

  def is_linear_in(self, directions: Sequence[Direction]) -> bool:
    return True

  def is_polynomial_in(self, directions: Sequence[Direction]) -> bool:
    return True

  def is_rational_in(self, directions: Sequence[Direction]) -> bool:
    return True

  def _compute_monotonicity(self) -> MonotonicityType:
    return MonotonicityType.NONDECREASING

  def _compute_curvature(self) -> CurvatureType:
    return CurvatureType.AFFINE

  def enumerate_variables(self, index_list: 'SymbolicIndexList'):
    index_list.add_new_element(self.var_type, self.component)

  def load_indices(self, index_list: 'SymbolicIndexList'):
    _, self.global_index = index_list.add_new_element(self.var_type, self.component)

  def _derivatives_ready(self) -> bool:
    return True

  def _differentiate(self, index: int, memo) -> Node:
    return ConstantNode(1.0 if index == self.global_index else 0.0)

  def _ad_forward_symbolic(self, directions, seeds, intermediates, memo) -> Node:
    i = self._direction_index(directions)
    return seeds[i] if i is not None else ConstantNode(0.0)

  def _backward_symbolic_step(self, directions, seed, df, intermediates):
    from .factory import my_add
    i = self._direction_index(directions)
    if i is not None:
      df[i] = my_add(df[i], seed)
    return ()

  def _symmetric_sweep(self, directions, S, intermediates, memo):
    zero = ConstantNode(0.0)
    dim_s = len(S[0]) if S else 0
    i = self._direction_index(directions)
    dfS = list(S[i]) if i is not None else [zero] * dim_s
    df = [zero] * len(directions)
    if i is not None:
      df[i] = ConstantNode(1.0)
    H = [[zero] * dim_s for _ in range(dim_s)]
    return dfS, df, H

  def _substitute(self, index: int, sub: Node, memo) -> Node:
    return sub if index == self.global_index else self

  def _evaluate(self, slot, x, buffers, memo) -> float:
    return float(x[self.global_index])

  def evaluate_with(self, visitor):
    return visitor.variable(self)

  def _ad_forward(self, slot, x, seed, buffers, memo):
    return float(x[self.global_index]), float(seed[self.global_index])

  def _ad_forward_buffered(self, slot, seed, buffers, memo) -> float:
    return float(seed[self.global_index])

  def _backward_step(self, slot, seed, df, buffers):
    df[self.global_index] += seed
    return ()

  def _ad_forward2(self, slot, seed, dseed, buffers, memo):
    return float(seed[self.global_index]), float(dseed[self.global_index])

  def _backward2_step(self, slot, seed1, seed2, df, ddf, buffers):
    df[self.global_index] += seed1
    ddf[self.global_index] += seed2
    return ()


class ConstantNode(Node):
  __slots__ = ('value', 'neutral_element')

  def __init__(self, value: float, neutral_element: Optional[NeutralElement] = None):
    super().__init__()
    self.value = float(value)
    if neutral_element is None:
      if self.value == 0.0:
        neutral_element = NeutralElement.ZERO
      elif self.value == 1.0:
        neutral_element = NeutralElement.ONE
      else:
        neutral_element = NeutralElement.NEITHER_ONE_NOR_ZERO
    self.neutral_element = neutral_element
    self._constant = True

  def get_name(self) -> OperatorName:
    return OperatorName.DOUBLE_CONSTANT

  def is_one_or_zero(self) -> NeutralElement:
    return self.neutral_element

  def get_value(self) -> Optional[float]:
    return self.value

  def _copy_node(self) -> 'ConstantNode':
    return ConstantNode(self.value, self.neutral_element)

  def _compute_hash(self) -> int:
    return hash((OperatorName.DOUBLE_CONSTANT, self.value))

  def to_string(self) -> str:
    text = repr(self.value)
    return f"({text})" if self.value < 0.0 else text

  def is_depending_on_type(self, var_type: VariableType) -> bool:
    return False

  def is_depending_on(self, directions) -> bool:
    return False

  def is_linear_in(self, directions) -> bool:
    return True

  def is_polynomial_in(self, directions) -> bool:
    return True

  def is_rational_in(self, directions) -> bool:
    return True

  def _compute_monotonicity(self) -> MonotonicityType:
    return MonotonicityType.CONSTANT

  def _compute_curvature(self) -> CurvatureType:
    return CurvatureType.CONSTANT

  def enumerate_variables(self, index_list):
    pass

  def load_indices(self, index_list):
    pass

  def _derivatives_ready(self) -> bool:
    return True

  def _differentiate(self, index, memo) -> Node:
    return ConstantNode(0.0)

  def _ad_forward_symbolic(self, directions, seeds, intermediates, memo) -> Node:
    return ConstantNode(0.0)

  def _backward_symbolic_step(self, directions, seed, df, intermediates):
    return ()

  def _symmetric_sweep(self, directions, S, intermediates, memo):
    return zero_sweep(directions, S)

  def _substitute(self, index, sub, memo) -> Node:
    return self

  def _evaluate(self, slot, x, buffers, memo) -> float:
    return self.value

  def evaluate_with(self, visitor):
    return visitor.constant(self.value)

  def _ad_forward(self, slot, x, seed, buffers, memo):
    return self.value, 0.0

  def _ad_forward_buffered(self, slot, seed, buffers, memo) -> float:
    return 0.0

  def _backward_step(self, slot, seed, df, buffers):
    return ()

  def _ad_forward2(self, slot, seed, dseed, buffers, memo):
    return 0.0, 0.0

  def _backward2_step(self, slot, seed1, seed2, df, ddf, buffers):
    return ()
