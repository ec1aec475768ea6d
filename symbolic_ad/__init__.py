"""Symbolic AD Package

Expression DAGs over smooth elementary operators with buffered numeric
forward/reverse differentiation up to second order and symbolic
differentiation producing new expressions.
"""

from .expression_tree import (
  Expression, Node, VariableNode, ConstantNode, UnaryOpNode, PowerIntNode, BinaryOpNode,
  OperatorName, NeutralElement, CurvatureType, MonotonicityType, VariableType, ReturnValue,
  SymbolicADError, DomainError, EvaluationBase,
  as_node, variable, my_add, my_sub, my_prod, my_quotient, my_power, my_power_int,
  sin, cos, tan, asin, acos, atan, exp, log,
  BufferPool, get_global_pool, clear_global_pool,
  SymbolicIndexList, SympyEvaluator, ExpressionValidator
)
from .config import EngineConfig, get_config, set_config, reset_config
from .logging_system import LogLevel, EngineLogger, get_logger, configure_logging, set_log_level

__version__ = "0.1.0"
__all__ = [
  "Expression", "Node", "VariableNode", "ConstantNode", "UnaryOpNode", "PowerIntNode", "BinaryOpNode",
  "OperatorName", "NeutralElement", "CurvatureType", "MonotonicityType", "VariableType", "ReturnValue",
  "SymbolicADError", "DomainError", "EvaluationBase",
  "as_node", "variable", "my_add", "my_sub", "my_prod", "my_quotient", "my_power", "my_power_int",
  "sin", "cos", "tan", "asin", "acos", "atan", "exp", "log",
  "BufferPool", "get_global_pool", "clear_global_pool",
  "SymbolicIndexList", "SympyEvaluator", "ExpressionValidator",
  "EngineConfig", "get_config", "set_config", "reset_config",
  "LogLevel", "EngineLogger", "get_logger", "configure_logging", "set_log_level"
]
