"""Core expression node types and operator tables."""

from .node import Node, VariableNode, ConstantNode, Direction
from .unary import SmoothOperator, UnaryOpNode, PowerIntNode
from .binary import BinaryOpNode
from .operators import (
  OperatorName, NeutralElement, CurvatureType, MonotonicityType, VariableType, ReturnValue,
  UNARY_OP_TABLE, BINARY_OP_TABLE
)
from .errors import SymbolicADError, DomainError
from .evaluation_base import EvaluationBase
from .factory import (
  as_node, variable, my_add, my_sub, my_prod, my_quotient, my_power, my_power_int,
  make_unary, sin, cos, tan, asin, acos, atan, exp, log
)

__all__ = [
  'Node', 'VariableNode', 'ConstantNode', 'Direction',
  'SmoothOperator', 'UnaryOpNode', 'PowerIntNode', 'BinaryOpNode',
  'OperatorName', 'NeutralElement', 'CurvatureType', 'MonotonicityType', 'VariableType', 'ReturnValue',
  'UNARY_OP_TABLE', 'BINARY_OP_TABLE',
  'SymbolicADError', 'DomainError', 'EvaluationBase',
  'as_node', 'variable', 'my_add', 'my_sub', 'my_prod', 'my_quotient', 'my_power', 'my_power_int',
  'make_unary', 'sin', 'cos', 'tan', 'asin', 'acos', 'atan', 'exp', 'log'
]
