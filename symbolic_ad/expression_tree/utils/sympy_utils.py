import sympy as sp
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union

from ..core.evaluation_base import EvaluationBase
from ..core.node import Node, VariableNode, ConstantNode
from ..core.operators import OperatorName, VariableType, VARIABLE_PREFIXES
from ..core.factory import my_add, my_sub, my_prod, my_quotient, my_power, my_power_int, make_unary

# sympy function class -> unary operator
_SYMPY_UNARY = {
  sp.sin: OperatorName.SIN,
  sp.cos: OperatorName.COS,
  sp.tan: OperatorName.TAN,
  sp.asin: OperatorName.ASIN,
  sp.acos: OperatorName.ACOS,
  sp.atan: OperatorName.ATAN,
  sp.exp: OperatorName.EXP,
  sp.log: OperatorName.LOGARITHM,
}

_SYMBOL_PREFIXES = {VariableType.DIFFERENTIAL_STATE: "x"}


def default_symbol(var_type: VariableType, component: int) -> sp.Symbol:
  """x0, x1, .. for differential states, as in parse_expression; xa0, u0, .. otherwise"""
  prefix = _SYMBOL_PREFIXES.get(var_type, VARIABLE_PREFIXES[var_type])
  return sp.Symbol(f"{prefix}{component}", real=True)


class SympyEvaluator(EvaluationBase):
  """Translate an expression DAG into a SymPy expression.

  Results are memoised per node, so shared subexpressions are converted once.
  """

  def __init__(self, symbols: Optional[Mapping[Tuple[VariableType, int], sp.Symbol]] = None):
    self.symbols: Dict[Tuple[VariableType, int], sp.Symbol] = dict(symbols) if symbols else {}
    self._memo: Dict[int, Tuple[Node, sp.Expr]] = {}

  def __call__(self, node: Node) -> sp.Expr:
    key = id(node)
    if key not in self._memo:
      # the node is stored alongside so its id cannot be reused meanwhile
      self._memo[key] = (node, node.evaluate_with(self))
    return self._memo[key][1]

  def variable(self, node: VariableNode):
    key = node.is_variable()
    if key not in self.symbols:
      self.symbols[key] = default_symbol(*key)
    return self.symbols[key]

  def constant(self, value: float):
    if float(value).is_integer():
      return sp.Integer(int(value))
    return sp.Float(value)

  def sin(self, argument):
    return sp.sin(self(argument))

  def cos(self, argument):
    return sp.cos(self(argument))

  def tan(self, argument):
    return sp.tan(self(argument))

  def asin(self, argument):
    return sp.asin(self(argument))

  def acos(self, argument):
    return sp.acos(self(argument))

  def atan(self, argument):
    return sp.atan(self(argument))

  def exp(self, argument):
    return sp.exp(self(argument))

  def logarithm(self, argument):
    return sp.log(self(argument))

  def addition(self, a, b):
    return self(a) + self(b)

  def subtraction(self, a, b):
    return self(a) - self(b)

  def product(self, a, b):
    return self(a) * self(b)

  def quotient(self, a, b):
    return self(a) / self(b)

  def power(self, a, b):
    return self(a) ** self(b)

  def power_int(self, argument, exponent: int):
    return self(argument) ** sp.Integer(exponent)


SymbolMap = Union[Sequence[sp.Symbol], Mapping[sp.Symbol, Node]]


def _leaf_map(symbols: SymbolMap) -> Dict[sp.Symbol, Node]:
  if isinstance(symbols, Mapping):
    return dict(symbols)
  return {symbol: VariableNode(i) for i, symbol in enumerate(symbols)}


def sympy_to_node(sympy_expr: sp.Expr, symbols: SymbolMap) -> Node:
  """Convert a sympy expression into an expression DAG.

  `symbols` is either a sequence, where the i-th symbol becomes differential
  state i, or an explicit mapping from symbols to leaf nodes. Repeated
  sympy subexpressions map to one shared node.
  """
  leaves = _leaf_map(symbols)
  memo: Dict[sp.Basic, Node] = {}

  def convert(expr) -> Node:
    if expr in memo:
      return memo[expr]
    node = _convert(expr)
    memo[expr] = node
    return node

  def _convert(expr) -> Node:
    if expr.is_Symbol:
      if expr not in leaves:
        raise ValueError(f"Unknown symbol {expr} in expression")
      return leaves[expr]

    if expr.is_number:
      value = complex(expr)
      if value.imag != 0.0:
        raise ValueError(f"Complex constant {expr} cannot be represented")
      return ConstantNode(value.real)

    if expr.func in _SYMPY_UNARY:
      return make_unary(_SYMPY_UNARY[expr.func], convert(expr.args[0]))

    if isinstance(expr, sp.Pow):
      base, exponent = expr.args
      if exponent.is_Integer:
        return my_power_int(convert(base), int(exponent))
      return my_power(convert(base), convert(exponent))

    if isinstance(expr, sp.Add):
      # build a left-associative chain, subtracting negated terms
      args = expr.as_ordered_terms()
      result = convert(args[0])
      for term in args[1:]:
        if term.could_extract_minus_sign():
          result = my_sub(result, convert(-term))
        else:
          result = my_add(result, convert(term))
      return result

    if isinstance(expr, sp.Mul):
      numerator, denominator = sp.fraction(expr)
      if denominator != 1:
        return my_quotient(convert(numerator), convert(denominator))
      result = convert(expr.args[0])
      for factor in expr.args[1:]:
        result = my_prod(result, convert(factor))
      return result

    raise ValueError(f"Unsupported sympy expression: {expr}")

  return convert(sympy_expr)


def input_symbols(n_inputs: int) -> Tuple[sp.Symbol, ...]:
  """Symbols x0 .. x{n-1} used when parsing expression strings"""
  if n_inputs <= 0:
    return ()
  symbols = sp.symbols(f'x0:{n_inputs}', real=True)
  return tuple(symbols)


def parse_expression(expr_str: str, n_inputs: int = 1) -> Node:
  """Parse an infix string over x0..x{n-1} (X0.. accepted) into a DAG"""
  normalized_str = expr_str.replace('^', '**')
  for i in range(n_inputs):
    normalized_str = normalized_str.replace(f'X{i}', f'x{i}')

  symbols = input_symbols(n_inputs)
  local_names = {str(s): s for s in symbols}
  try:
    sympy_expr = sp.sympify(normalized_str, locals=local_names)
  except (sp.SympifyError, SyntaxError, TypeError) as e:
    raise ValueError(f"Cannot parse expression {expr_str!r}: {e}") from e
  return sympy_to_node(sympy_expr, symbols)
