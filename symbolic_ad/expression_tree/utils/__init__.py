"""Utilities for expression trees."""

from .index_list import SymbolicIndexList
from .sympy_utils import SympyEvaluator, sympy_to_node, parse_expression, input_symbols, default_symbol
from .tree_utils import get_all_nodes, topological_order, has_cycle, count_tree_nodes
from .validator import ExpressionValidator

__all__ = [
    'SymbolicIndexList',
    'SympyEvaluator', 'sympy_to_node', 'parse_expression', 'input_symbols', 'default_symbol',
    'get_all_nodes', 'topological_order', 'has_cycle', 'count_tree_nodes',
    'ExpressionValidator'
]
