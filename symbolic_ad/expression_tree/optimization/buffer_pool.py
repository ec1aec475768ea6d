from typing import Dict, Optional, Tuple, TYPE_CHECKING
import threading
import weakref
import numpy as np

from ...config import get_config
from ...logging_system import log_debug

if TYPE_CHECKING:
  from ..core.node import Node


class SlotBuffer:
  """Per-node storage of intermediate results, one entry per evaluation slot"""

  __slots__ = ('size', '_arrays')

  def __init__(self, fields: Tuple[str, ...], size: int = 1):
    self.size = size
    self._arrays: Dict[str, np.ndarray] = {name: np.zeros(size, dtype=np.float64) for name in fields}

  def __getitem__(self, name: str) -> np.ndarray:
    return self._arrays[name]

  def fields(self) -> Tuple[str, ...]:
    return tuple(self._arrays)

  def reserve(self, slot: int) -> bool:
    """Grow so that `slot` is addressable; returns True if a reallocation happened"""
    if slot < self.size:
      return False
    self.size += slot
    for name, old in self._arrays.items():
      grown = np.zeros(self.size, dtype=np.float64)
      grown[:old.shape[0]] = old
      self._arrays[name] = grown
    return True

  def clear(self):
    if self.size > 1:
      self.size = 1
      for name, old in self._arrays.items():
        self._arrays[name] = old[:1].copy()

  def copy(self) -> 'SlotBuffer':
    other = SlotBuffer.__new__(SlotBuffer)
    other.size = self.size
    other._arrays = {name: arr.copy() for name, arr in self._arrays.items()}
    return other


class BufferPool:
  """Evaluation context owning the slot buffers of every node it has seen.

  Nodes are weakly referenced, so buffers disappear together with the last
  handle on their node.
  """

  def __init__(self, initial_size: Optional[int] = None):
    self.initial_size = initial_size if initial_size is not None else get_config().initial_buffer_size
    self._buffers: 'weakref.WeakKeyDictionary[Node, SlotBuffer]' = weakref.WeakKeyDictionary()

  def get(self, node: 'Node') -> SlotBuffer:
    buf = self._buffers.get(node)
    if buf is None:
      buf = SlotBuffer(node.buffer_fields, self.initial_size)
      self._buffers[node] = buf
    return buf

  def reserve(self, node: 'Node', slot: int) -> SlotBuffer:
    buf = self.get(node)
    if buf.reserve(slot):
      log_debug(f"buffer of {node.get_name().name} grown to {buf.size} slots")
    return buf

  def clear_node(self, node: 'Node'):
    buf = self._buffers.get(node)
    if buf is not None:
      buf.clear()

  def clone(self, source: 'Node', target: 'Node'):
    buf = self._buffers.get(source)
    if buf is not None:
      self._buffers[target] = buf.copy()

  def __contains__(self, node: 'Node') -> bool:
    return node in self._buffers

  def __len__(self) -> int:
    return len(self._buffers)

  def get_stats(self) -> dict:
    """Get pool statistics"""
    sizes = [buf.size for buf in self._buffers.values()]
    return {
      'n_buffers': len(sizes),
      'max_slots': max(sizes) if sizes else 0,
      'total_slots': int(sum(sizes)),
    }

  def clear(self):
    """Drop all buffers"""
    self._buffers.clear()


# Global instance
_GLOBAL_POOL: Optional[BufferPool] = None
_POOL_LOCK = threading.Lock()


def get_global_pool() -> BufferPool:
  """Get the process-global evaluation context"""
  global _GLOBAL_POOL

  if _GLOBAL_POOL is not None:
    return _GLOBAL_POOL

  with _POOL_LOCK:
    if _GLOBAL_POOL is None:
      _GLOBAL_POOL = BufferPool()

  return _GLOBAL_POOL


def resolve_pool(buffers: Optional[BufferPool]) -> BufferPool:
  return buffers if buffers is not None else get_global_pool()


def clear_global_pool():
  """Drop every buffer of the global pool"""
  global _GLOBAL_POOL
  with _POOL_LOCK:
    if _GLOBAL_POOL is not None:
      _GLOBAL_POOL.clear()
    _GLOBAL_POOL = None
