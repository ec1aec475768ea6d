"""Expression Tree Module

Expression DAG nodes with numeric and symbolic differentiation.
"""

from .expression import Expression
from .core.node import Node, VariableNode, ConstantNode
from .core.unary import SmoothOperator, UnaryOpNode, PowerIntNode
from .core.binary import BinaryOpNode
from .core.operators import (
  OperatorName,
  NeutralElement,
  CurvatureType,
  MonotonicityType,
  VariableType,
  ReturnValue
)
from .core.errors import SymbolicADError, DomainError
from .core.evaluation_base import EvaluationBase
from .core.factory import (
  as_node, variable, my_add, my_sub, my_prod, my_quotient, my_power, my_power_int,
  sin, cos, tan, asin, acos, atan, exp, log
)
from .optimization import BufferPool, get_global_pool, clear_global_pool
from .utils import SymbolicIndexList, SympyEvaluator, ExpressionValidator

__all__ = [
  "Expression",
  "Node", "VariableNode", "ConstantNode", "SmoothOperator", "UnaryOpNode", "PowerIntNode", "BinaryOpNode",
  "OperatorName", "NeutralElement", "CurvatureType", "MonotonicityType", "VariableType", "ReturnValue",
  "SymbolicADError", "DomainError", "EvaluationBase",
  "as_node", "variable", "my_add", "my_sub", "my_prod", "my_quotient", "my_power", "my_power_int",
  "sin", "cos", "tan", "asin", "acos", "atan", "exp", "log",
  "BufferPool", "get_global_pool", "clear_global_pool",
  "SymbolicIndexList", "SympyEvaluator", "ExpressionValidator"
]
