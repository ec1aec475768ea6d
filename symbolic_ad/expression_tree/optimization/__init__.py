"""Evaluation buffers for expression trees."""

from .buffer_pool import SlotBuffer, BufferPool, get_global_pool, resolve_pool, clear_global_pool

__all__ = ['SlotBuffer', 'BufferPool', 'get_global_pool', 'resolve_pool', 'clear_global_pool']
