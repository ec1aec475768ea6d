from typing import Dict, List, Optional, Set, Tuple, TYPE_CHECKING

from ..core.operators import VariableType
from ...logging_system import log_debug

if TYPE_CHECKING:
  from ..core.node import Node


class SymbolicIndexList:
  """Registry of the distinct variables of one or more expressions.

  Each (variable type, component) pair receives the next free global index
  the first time it is seen. Interior nodes are remembered by identity so a
  shared subexpression is traversed only once.
  """

  def __init__(self):
    self._indices: Dict[Tuple[VariableType, int], int] = {}
    self._seen_nodes: Set[int] = set()
    # keeps registered nodes alive so their ids stay unique
    self._nodes: List['Node'] = []

  def add_new_element(self, var_type: VariableType, component: int) -> Tuple[bool, int]:
    key = (VariableType(var_type), int(component))
    if key in self._indices:
      return True, self._indices[key]
    index = len(self._indices)
    self._indices[key] = index
    log_debug(f"registered {key[0].name}[{key[1]}] as variable {index}")
    return False, index

  def add_new_node(self, node: 'Node') -> bool:
    """Mark an interior node as visited; True if it had been seen before"""
    if id(node) in self._seen_nodes:
      return True
    self._seen_nodes.add(id(node))
    self._nodes.append(node)
    return False

  def number_of_variables(self, var_type: Optional[VariableType] = None) -> int:
    if var_type is None:
      return len(self._indices)
    return sum(1 for t, _ in self._indices if t == var_type)

  def index_of(self, var_type: VariableType, component: int) -> Optional[int]:
    return self._indices.get((VariableType(var_type), int(component)))

  def variables(self) -> List[Tuple[VariableType, int]]:
    """Registered (type, component) pairs in index order"""
    return sorted(self._indices, key=self._indices.get)

  def __len__(self) -> int:
    return len(self._indices)

  def __contains__(self, key: Tuple[VariableType, int]) -> bool:
    return (VariableType(key[0]), int(key[1])) in self._indices
