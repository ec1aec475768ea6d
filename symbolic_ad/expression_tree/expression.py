import math
import numpy as np
import sympy as sp
from typing import List, Mapping, Optional, Sequence, Tuple, Union

from .core.node import Node, ConstantNode, Direction
from .core.operators import ReturnValue, VariableType
from .core.errors import DomainError
from .optimization.buffer_pool import BufferPool
from .utils.index_list import SymbolicIndexList
from .utils.sympy_utils import SympyEvaluator, sympy_to_node, parse_expression
from ..logging_system import log_debug, log_info


class Expression:
  """Expression DAG with its own evaluation buffers and cached string form"""

  __slots__ = ('root', 'buffers', '_string_cache')

  def __init__(self, root: Node, buffers: Optional[BufferPool] = None):
    self.root = root
    self.buffers = buffers if buffers is not None else BufferPool()
    self._string_cache: Optional[str] = None

  @staticmethod
  def _point(x: Sequence[float]) -> np.ndarray:
    return np.asarray(x, dtype=np.float64)

  # -- numeric ---------------------------------------------------------

  def evaluate(self, x: Sequence[float], slot: int = 0) -> float:
    return self.root.evaluate(slot, self._point(x), self.buffers)

  def try_evaluate(self, x: Sequence[float], slot: int = 0) -> Tuple[ReturnValue, float]:
    """Status-code form of evaluate: RET_NAN instead of a DomainError"""
    try:
      return ReturnValue.SUCCESSFUL_RETURN, self.evaluate(x, slot)
    except DomainError as e:
      log_debug(f"evaluation returned RET_NAN: {e}")
      return ReturnValue.RET_NAN, math.nan

  def evaluate_batch(self, points: np.ndarray) -> np.ndarray:
    """Evaluate every row of `points`, each in its own slot"""
    points = np.atleast_2d(np.asarray(points, dtype=np.float64))
    return np.array([self.root.evaluate(slot, x, self.buffers) for slot, x in enumerate(points)])

  def gradient(self, x: Sequence[float], slot: int = 0) -> np.ndarray:
    """Full gradient with one forward and one backward sweep"""
    x = self._point(x)
    self.root.ad_forward(slot, x, np.zeros_like(x), self.buffers)
    df = np.zeros_like(x)
    self.root.ad_backward(slot, 1.0, df, self.buffers)
    return df

  def directional_derivative(self, x: Sequence[float], direction: Sequence[float], slot: int = 0) -> float:
    _, df = self.root.ad_forward(slot, self._point(x), self._point(direction), self.buffers)
    return df

  def hessian_vector_product(self, x: Sequence[float], v: Sequence[float], slot: int = 0) -> np.ndarray:
    """H(x) v by forward-over-reverse"""
    x = self._point(x)
    self.root.ad_forward(slot, x, self._point(v), self.buffers)
    df = np.zeros_like(x)
    ddf = np.zeros_like(x)
    self.root.ad_backward2(slot, 1.0, 0.0, df, ddf, self.buffers)
    return ddf

  def hessian(self, x: Sequence[float], slot: int = 0) -> np.ndarray:
    x = self._point(x)
    n = x.shape[0]
    H = np.zeros((n, n))
    for i in range(n):
      e = np.zeros(n)
      e[i] = 1.0
      H[:, i] = self.hessian_vector_product(x, e, slot)
    return H

  def clear_buffers(self):
    self.buffers.clear()

  # -- symbolic --------------------------------------------------------

  def differentiate(self, index: int) -> 'Expression':
    return Expression(self.root.differentiate(index))

  def substitute(self, index: int, sub: Union['Expression', Node, float]) -> 'Expression':
    if isinstance(sub, Expression):
      sub = sub.root
    elif not isinstance(sub, Node):
      sub = ConstantNode(sub)
    return Expression(self.root.substitute(index, sub))

  def _directions(self, directions: Optional[Sequence[Direction]]) -> List[Direction]:
    return list(directions) if directions is not None else self.variables()

  def symbolic_gradient(self, directions: Optional[Sequence[Direction]] = None,
                        intermediates: Optional[List[Node]] = None) -> List['Expression']:
    """Gradient expressions w.r.t. `directions` by one symbolic backward sweep"""
    directions = self._directions(directions)
    df = [ConstantNode(0.0) for _ in directions]
    self.root.ad_backward_symbolic(directions, ConstantNode(1.0), df, intermediates)
    return [Expression(d) for d in df]

  def symbolic_hessian(self, directions: Optional[Sequence[Direction]] = None,
                       intermediates: Optional[List[Node]] = None) -> List[List['Expression']]:
    """Hessian expressions w.r.t. `directions` from one symmetric sweep"""
    directions = self._directions(directions)
    n = len(directions)
    S = [[ConstantNode(1.0 if i == j else 0.0) for j in range(n)] for i in range(n)]
    _, _, H = self.root.ad_symmetric(directions, ConstantNode(1.0), S, intermediates)
    return [[Expression(h) for h in row] for row in H]

  # -- variables -------------------------------------------------------

  def variables(self) -> List[Direction]:
    """Distinct (type, component) pairs in first-seen order"""
    index_list = SymbolicIndexList()
    self.root.enumerate_variables(index_list)
    return index_list.variables()

  def load_indices(self, index_list: Optional[SymbolicIndexList] = None) -> SymbolicIndexList:
    """Assign consecutive global indices to the variables of this expression"""
    if index_list is None:
      index_list = SymbolicIndexList()
    self.root.load_indices(index_list)
    self.clear_cache()
    log_info(f"{len(index_list)} variables registered")
    return index_list

  def is_depending_on(self, var_type: VariableType) -> bool:
    return self.root.is_depending_on_type(var_type)

  # -- conversion ------------------------------------------------------

  def to_string(self) -> str:
    if self._string_cache is None:
      self._string_cache = self.root.to_string()
    return self._string_cache

  def __str__(self) -> str:
    return self.to_string()

  def to_sympy(self, symbols: Optional[Mapping[Direction, sp.Symbol]] = None) -> sp.Expr:
    return SympyEvaluator(symbols)(self.root)

  @classmethod
  def from_sympy(cls, sympy_expr: sp.Expr, symbols) -> 'Expression':
    return cls(sympy_to_node(sympy_expr, symbols))

  @classmethod
  def from_string(cls, expr_str: str, n_inputs: int = 1) -> 'Expression':
    return cls(parse_expression(expr_str, n_inputs))

  def copy(self) -> 'Expression':
    return Expression(self.root.copy(self.buffers), self.buffers)

  def size(self) -> int:
    """Distinct node count"""
    return self.root.size()

  def clear_cache(self):
    """Clear cached values"""
    self._string_cache = None

  def __hash__(self) -> int:
    return hash(self.root)

  def __eq__(self, other) -> bool:
    if not isinstance(other, Expression):
      return False
    return hash(self) == hash(other)
