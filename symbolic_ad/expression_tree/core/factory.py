"""Node constructors that fold neutral elements and constant operands.

Every expression built by the differentiation routines goes through these
functions, which keeps derivative expressions free of 0*x and 1*x chains.
"""
import numbers
from typing import Union

from .node import Node, VariableNode, ConstantNode
from .unary import UnaryOpNode, PowerIntNode
from .binary import BinaryOpNode
from .operators import OperatorName, NeutralElement, VariableType

Operand = Union[Node, float, int]


def as_node(value: Operand) -> Node:
  if isinstance(value, Node):
    return value
  if isinstance(value, numbers.Real) and not isinstance(value, bool):
    return ConstantNode(float(value))
  raise TypeError(f"Cannot use {type(value).__name__} as an expression")


def variable(component: int, var_type: VariableType = VariableType.DIFFERENTIAL_STATE) -> VariableNode:
  return VariableNode(component, var_type)


def _is_zero(node: Node) -> bool:
  return node.is_one_or_zero() == NeutralElement.ZERO


def _is_one(node: Node) -> bool:
  return node.is_one_or_zero() == NeutralElement.ONE


def _both_constant(a: Node, b: Node) -> bool:
  return isinstance(a, ConstantNode) and isinstance(b, ConstantNode)


def my_add(a: Operand, b: Operand) -> Node:
  a, b = as_node(a), as_node(b)
  if _is_zero(a):
    return b
  if _is_zero(b):
    return a
  if _both_constant(a, b):
    return ConstantNode(a.value + b.value)
  return BinaryOpNode(OperatorName.ADDITION, a, b)


def my_sub(a: Operand, b: Operand) -> Node:
  a, b = as_node(a), as_node(b)
  if _is_zero(b):
    return a
  if _both_constant(a, b):
    return ConstantNode(a.value - b.value)
  if _is_zero(a):
    return my_prod(ConstantNode(-1.0), b)
  return BinaryOpNode(OperatorName.SUBTRACTION, a, b)


def my_prod(a: Operand, b: Operand) -> Node:
  a, b = as_node(a), as_node(b)
  if _is_zero(a) or _is_zero(b):
    return ConstantNode(0.0)
  if _is_one(a):
    return b
  if _is_one(b):
    return a
  if _both_constant(a, b):
    return ConstantNode(a.value * b.value)
  return BinaryOpNode(OperatorName.PRODUCT, a, b)


def my_quotient(a: Operand, b: Operand) -> Node:
  a, b = as_node(a), as_node(b)
  if _is_zero(a):
    return ConstantNode(0.0)
  if _is_one(b):
    return a
  if _both_constant(a, b) and b.value != 0.0:
    return ConstantNode(a.value / b.value)
  return BinaryOpNode(OperatorName.QUOTIENT, a, b)


def my_power_int(a: Operand, exponent: int) -> Node:
  a = as_node(a)
  n = int(exponent)
  if n == 0:
    return ConstantNode(1.0, NeutralElement.ONE)
  if n == 1:
    return a
  if _is_zero(a) and n > 0:
    return ConstantNode(0.0)
  if _is_one(a):
    return ConstantNode(1.0)
  if isinstance(a, ConstantNode) and a.value != 0.0:
    return ConstantNode(a.value ** n)
  return PowerIntNode(a, n)


def my_power(a: Operand, b: Operand) -> Node:
  a, b = as_node(a), as_node(b)
  if _is_zero(b):
    return ConstantNode(1.0)
  if _is_one(b):
    return a
  if isinstance(b, ConstantNode) and b.value.is_integer():
    return my_power_int(a, int(b.value))
  if _both_constant(a, b) and a.value > 0.0:
    return ConstantNode(a.value ** b.value)
  return BinaryOpNode(OperatorName.POWER, a, b)


def make_unary(operator_name: OperatorName, argument: Operand) -> Node:
  return UnaryOpNode(operator_name, as_node(argument))


def sin(x: Operand) -> Node:
  return make_unary(OperatorName.SIN, x)


def cos(x: Operand) -> Node:
  return make_unary(OperatorName.COS, x)


def tan(x: Operand) -> Node:
  return make_unary(OperatorName.TAN, x)


def asin(x: Operand) -> Node:
  return make_unary(OperatorName.ASIN, x)


def acos(x: Operand) -> Node:
  return make_unary(OperatorName.ACOS, x)


def atan(x: Operand) -> Node:
  return make_unary(OperatorName.ATAN, x)


def exp(x: Operand) -> Node:
  return make_unary(OperatorName.EXP, x)


def log(x: Operand) -> Node:
  return make_unary(OperatorName.LOGARITHM, x)
