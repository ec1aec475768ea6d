import math
import numpy as np
import numba
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Dict, Optional


class OperatorName(IntEnum):
  VARIABLE = 0
  DOUBLE_CONSTANT = 1
  # Unary ops
  SIN = 2
  COS = 3
  TAN = 4
  ASIN = 5
  ACOS = 6
  ATAN = 7
  EXP = 8
  LOGARITHM = 9
  # Binary ops
  ADDITION = 10
  SUBTRACTION = 11
  PRODUCT = 12
  QUOTIENT = 13
  POWER = 14
  # Integer power
  POWER_INT = 15


class NeutralElement(IntEnum):
  ZERO = 0
  ONE = 1
  NEITHER_ONE_NOR_ZERO = 2


class CurvatureType(IntEnum):
  UNKNOWN = 0
  CONSTANT = 1
  AFFINE = 2
  CONVEX = 3
  CONCAVE = 4
  NEITHER_CONVEX_NOR_CONCAVE = 5


class MonotonicityType(IntEnum):
  UNKNOWN = 0
  CONSTANT = 1
  NONDECREASING = 2
  NONINCREASING = 3
  NONMONOTONIC = 4


class VariableType(IntEnum):
  DIFFERENTIAL_STATE = 0
  ALGEBRAIC_STATE = 1
  CONTROL = 2
  PARAMETER = 3
  DISTURBANCE = 4
  TIME = 5
  INTERMEDIATE_STATE = 6
  ONLINE_DATA = 7


class ReturnValue(IntEnum):
  SUCCESSFUL_RETURN = 0
  RET_NAN = 1


# Printed names of the variable kinds
VARIABLE_PREFIXES: Dict[VariableType, str] = {
  VariableType.DIFFERENTIAL_STATE: 'xd',
  VariableType.ALGEBRAIC_STATE: 'xa',
  VariableType.CONTROL: 'u',
  VariableType.PARAMETER: 'p',
  VariableType.DISTURBANCE: 'w',
  VariableType.TIME: 't',
  VariableType.INTERMEDIATE_STATE: 'a',
  VariableType.ONLINE_DATA: 'od',
}


# ---------------------------------------------------------------------------
# Unary formula kernels: value, first and second derivative w.r.t. argument
# ---------------------------------------------------------------------------

@numba.njit(cache=True, error_model='numpy')
def _always(x):
  return True


@numba.njit(cache=True, error_model='numpy')
def _unit_interval(x):
  return -1.0 <= x <= 1.0


@numba.njit(cache=True, error_model='numpy')
def _positive(x):
  return x > 0.0


@numba.njit(cache=True, error_model='numpy')
def _sin(x):
  return math.sin(x)


@numba.njit(cache=True, error_model='numpy')
def _d_sin(x):
  return math.cos(x)


@numba.njit(cache=True, error_model='numpy')
def _dd_sin(x):
  return -math.sin(x)


@numba.njit(cache=True, error_model='numpy')
def _cos(x):
  return math.cos(x)


@numba.njit(cache=True, error_model='numpy')
def _d_cos(x):
  return -math.sin(x)


@numba.njit(cache=True, error_model='numpy')
def _dd_cos(x):
  return -math.cos(x)


@numba.njit(cache=True, error_model='numpy')
def _tan(x):
  return math.tan(x)


@numba.njit(cache=True, error_model='numpy')
def _d_tan(x):
  c = math.cos(x)
  return 1.0 / (c * c)


@numba.njit(cache=True, error_model='numpy')
def _dd_tan(x):
  c = math.cos(x)
  return 2.0 * math.sin(x) / (c * c * c)


@numba.njit(cache=True, error_model='numpy')
def _asin(x):
  return math.asin(x)


@numba.njit(cache=True, error_model='numpy')
def _d_asin(x):
  return 1.0 / math.sqrt(1.0 - x * x)


@numba.njit(cache=True, error_model='numpy')
def _dd_asin(x):
  v1 = math.sqrt(1.0 - x * x)
  return -2.0 * x * (-0.5 / v1 / v1 / v1)


@numba.njit(cache=True, error_model='numpy')
def _acos(x):
  return math.acos(x)


@numba.njit(cache=True, error_model='numpy')
def _d_acos(x):
  return -1.0 / math.sqrt(1.0 - x * x)


@numba.njit(cache=True, error_model='numpy')
def _dd_acos(x):
  v1 = math.sqrt(1.0 - x * x)
  return -x / (v1 * v1 * v1)


@numba.njit(cache=True, error_model='numpy')
def _atan(x):
  return math.atan(x)


@numba.njit(cache=True, error_model='numpy')
def _d_atan(x):
  return 1.0 / (1.0 + x * x)


@numba.njit(cache=True, error_model='numpy')
def _dd_atan(x):
  v1 = 1.0 + x * x
  return -2.0 * x / (v1 * v1)


@numba.njit(cache=True, error_model='numpy')
def _exp(x):
  return math.exp(x)


@numba.njit(cache=True, error_model='numpy')
def _log(x):
  return math.log(x)


@numba.njit(cache=True, error_model='numpy')
def _d_log(x):
  return 1.0 / x


@numba.njit(cache=True, error_model='numpy')
def _dd_log(x):
  return -1.0 / (x * x)


@numba.njit(cache=True, error_model='numpy')
def power_int_kernel(x, n):
  """x^n together with n*x^(n-1) and n*(n-1)*x^(n-2); vanishing coefficients give exact zeros"""
  f = x ** n
  d = 0.0
  dd = 0.0
  if n != 0:
    d = n * x ** (n - 1)
  if n != 0 and n != 1:
    dd = n * (n - 1) * x ** (n - 2)
  return f, d, dd


# ---------------------------------------------------------------------------
# Binary formula kernels: (f, df/da, df/db, d2f/da2, d2f/dadb, d2f/db2)
# ---------------------------------------------------------------------------

@numba.njit(cache=True, error_model='numpy')
def _addition_partials(a, b):
  return a + b, 1.0, 1.0, 0.0, 0.0, 0.0


@numba.njit(cache=True, error_model='numpy')
def _subtraction_partials(a, b):
  return a - b, 1.0, -1.0, 0.0, 0.0, 0.0


@numba.njit(cache=True, error_model='numpy')
def _product_partials(a, b):
  return a * b, b, a, 0.0, 1.0, 0.0


@numba.njit(cache=True, error_model='numpy')
def _quotient_partials(a, b):
  inv = 1.0 / b
  return a * inv, inv, -a * inv * inv, 0.0, -inv * inv, 2.0 * a * inv * inv * inv


@numba.njit(cache=True, error_model='numpy')
def _power_partials(a, b):
  f = a ** b
  fa = 0.0
  faa = 0.0
  if b != 0.0:
    fa = b * a ** (b - 1.0)
  if b != 0.0 and b != 1.0:
    faa = b * (b - 1.0) * a ** (b - 2.0)
  if a > 0.0:
    log_a = math.log(a)
    fb = f * log_a
    fab = a ** (b - 1.0) * (1.0 + b * log_a)
    fbb = f * log_a * log_a
  else:
    fb = np.nan
    fab = np.nan
    fbb = np.nan
  return f, fa, fb, faa, fab, fbb


# ---------------------------------------------------------------------------
# Operator tables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UnaryOpSpec:
  name: str                       # printed function name
  fcn: Callable[[float], float]
  dfcn: Callable[[float], float]
  ddfcn: Callable[[float], float]
  domain: Callable[[float], bool]
  monotonicity: MonotonicityType  # of the outer function on its domain
  curvature: CurvatureType        # of the outer function on its domain
  visitor_method: str


@dataclass(frozen=True)
class BinaryOpSpec:
  symbol: Optional[str]           # infix symbol, None for function notation
  partials: Callable
  visitor_method: str


UNARY_OP_TABLE: Dict[OperatorName, UnaryOpSpec] = {
  OperatorName.SIN: UnaryOpSpec('sin', _sin, _d_sin, _dd_sin, _always,
                                MonotonicityType.NONMONOTONIC, CurvatureType.NEITHER_CONVEX_NOR_CONCAVE, 'sin'),
  OperatorName.COS: UnaryOpSpec('cos', _cos, _d_cos, _dd_cos, _always,
                                MonotonicityType.NONMONOTONIC, CurvatureType.NEITHER_CONVEX_NOR_CONCAVE, 'cos'),
  OperatorName.TAN: UnaryOpSpec('tan', _tan, _d_tan, _dd_tan, _always,
                                MonotonicityType.NONMONOTONIC, CurvatureType.NEITHER_CONVEX_NOR_CONCAVE, 'tan'),
  OperatorName.ASIN: UnaryOpSpec('asin', _asin, _d_asin, _dd_asin, _unit_interval,
                                 MonotonicityType.NONDECREASING, CurvatureType.NEITHER_CONVEX_NOR_CONCAVE, 'asin'),
  OperatorName.ACOS: UnaryOpSpec('acos', _acos, _d_acos, _dd_acos, _unit_interval,
                                 MonotonicityType.NONINCREASING, CurvatureType.NEITHER_CONVEX_NOR_CONCAVE, 'acos'),
  OperatorName.ATAN: UnaryOpSpec('atan', _atan, _d_atan, _dd_atan, _always,
                                 MonotonicityType.NONDECREASING, CurvatureType.NEITHER_CONVEX_NOR_CONCAVE, 'atan'),
  OperatorName.EXP: UnaryOpSpec('exp', _exp, _exp, _exp, _always,
                                MonotonicityType.NONDECREASING, CurvatureType.CONVEX, 'exp'),
  OperatorName.LOGARITHM: UnaryOpSpec('log', _log, _d_log, _dd_log, _positive,
                                      MonotonicityType.NONDECREASING, CurvatureType.CONCAVE, 'logarithm'),
}

BINARY_OP_TABLE: Dict[OperatorName, BinaryOpSpec] = {
  OperatorName.ADDITION: BinaryOpSpec('+', _addition_partials, 'addition'),
  OperatorName.SUBTRACTION: BinaryOpSpec('-', _subtraction_partials, 'subtraction'),
  OperatorName.PRODUCT: BinaryOpSpec('*', _product_partials, 'product'),
  OperatorName.QUOTIENT: BinaryOpSpec('/', _quotient_partials, 'quotient'),
  OperatorName.POWER: BinaryOpSpec(None, _power_partials, 'power'),
}


# ---------------------------------------------------------------------------
# Classification composition rules
# ---------------------------------------------------------------------------

def flip_monotonicity(m: MonotonicityType) -> MonotonicityType:
  if m == MonotonicityType.NONDECREASING:
    return MonotonicityType.NONINCREASING
  if m == MonotonicityType.NONINCREASING:
    return MonotonicityType.NONDECREASING
  return m


def negate_curvature(c: CurvatureType) -> CurvatureType:
  if c == CurvatureType.CONVEX:
    return CurvatureType.CONCAVE
  if c == CurvatureType.CONCAVE:
    return CurvatureType.CONVEX
  return c


def compose_monotonicity(outer: MonotonicityType, inner: MonotonicityType) -> MonotonicityType:
  """Monotonicity of outer(inner(x))"""
  if inner == MonotonicityType.CONSTANT:
    return MonotonicityType.CONSTANT
  if outer == MonotonicityType.NONDECREASING:
    return inner
  if outer == MonotonicityType.NONINCREASING:
    return flip_monotonicity(inner)
  return MonotonicityType.NONMONOTONIC


def compose_curvature(outer_curvature: CurvatureType, outer_monotonicity: MonotonicityType,
                      inner: CurvatureType) -> CurvatureType:
  """Disciplined-convex composition of a scalar function with an argument"""
  if inner == CurvatureType.CONSTANT:
    return CurvatureType.CONSTANT

  increasing = outer_monotonicity == MonotonicityType.NONDECREASING
  decreasing = outer_monotonicity == MonotonicityType.NONINCREASING

  if outer_curvature == CurvatureType.CONVEX:
    if (inner == CurvatureType.AFFINE or
        (increasing and inner == CurvatureType.CONVEX) or
        (decreasing and inner == CurvatureType.CONCAVE)):
      return CurvatureType.CONVEX

  if outer_curvature == CurvatureType.CONCAVE:
    if (inner == CurvatureType.AFFINE or
        (increasing and inner == CurvatureType.CONCAVE) or
        (decreasing and inner == CurvatureType.CONVEX)):
      return CurvatureType.CONCAVE

  return CurvatureType.NEITHER_CONVEX_NOR_CONCAVE


def add_monotonicity(m1: MonotonicityType, m2: MonotonicityType) -> MonotonicityType:
  """Monotonicity of a sum"""
  if m1 == MonotonicityType.CONSTANT:
    return m2
  if m2 == MonotonicityType.CONSTANT:
    return m1
  if m1 == m2:
    return m1
  return MonotonicityType.NONMONOTONIC


def add_curvature(c1: CurvatureType, c2: CurvatureType) -> CurvatureType:
  """Curvature of a sum"""
  if c1 == CurvatureType.CONSTANT:
    return c2
  if c2 == CurvatureType.CONSTANT:
    return c1
  if c1 == CurvatureType.AFFINE:
    return c2
  if c2 == CurvatureType.AFFINE:
    return c1
  if c1 == c2 and c1 in (CurvatureType.CONVEX, CurvatureType.CONCAVE):
    return c1
  return CurvatureType.NEITHER_CONVEX_NOR_CONCAVE


def scale_curvature(c: CurvatureType, factor: float) -> CurvatureType:
  """Curvature of factor * g for a constant factor"""
  if factor == 0.0:
    return CurvatureType.CONSTANT
  return c if factor > 0.0 else negate_curvature(c)


def scale_monotonicity(m: MonotonicityType, factor: float) -> MonotonicityType:
  """Monotonicity of factor * g for a constant factor"""
  if factor == 0.0:
    return MonotonicityType.CONSTANT
  return m if factor > 0.0 else flip_monotonicity(m)
