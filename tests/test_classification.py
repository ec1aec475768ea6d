from symbolic_ad import (
    ConstantNode, CurvatureType, MonotonicityType, NeutralElement, PowerIntNode,
    VariableNode, VariableType, sin, cos, exp, log, acos, my_add, my_prod, my_quotient
)

DS = VariableType.DIFFERENTIAL_STATE
X0 = [(DS, 0)]


def test_leaves():
    x = VariableNode(0)
    c = ConstantNode(2.0)
    assert x.get_curvature() == CurvatureType.AFFINE
    assert x.get_monotonicity() == MonotonicityType.NONDECREASING
    assert c.get_curvature() == CurvatureType.CONSTANT
    assert c.get_monotonicity() == MonotonicityType.CONSTANT
    assert x.is_linear_in(X0) and c.is_linear_in(X0)


def test_neutral_elements():
    assert ConstantNode(0.0).is_one_or_zero() == NeutralElement.ZERO
    assert ConstantNode(1.0).is_one_or_zero() == NeutralElement.ONE
    assert ConstantNode(2.0).is_one_or_zero() == NeutralElement.NEITHER_ONE_NOR_ZERO
    assert VariableNode(0).is_one_or_zero() == NeutralElement.NEITHER_ONE_NOR_ZERO
    assert sin(VariableNode(0)).is_one_or_zero() == NeutralElement.NEITHER_ONE_NOR_ZERO


def test_unary_composition():
    x = VariableNode(0)
    assert exp(x).get_curvature() == CurvatureType.CONVEX
    assert exp(x).get_monotonicity() == MonotonicityType.NONDECREASING
    assert log(x).get_curvature() == CurvatureType.CONCAVE
    assert acos(x).get_monotonicity() == MonotonicityType.NONINCREASING
    assert sin(x).get_monotonicity() == MonotonicityType.NONMONOTONIC
    assert exp(PowerIntNode(x, 2)).get_curvature() == CurvatureType.CONVEX
    assert log(exp(x)).get_curvature() == CurvatureType.NEITHER_CONVEX_NOR_CONCAVE
    assert sin(ConstantNode(1.0)).get_curvature() == CurvatureType.CONSTANT


def test_power_int_rules():
    x = VariableNode(0)
    square = PowerIntNode(x, 2)
    assert square.get_curvature() == CurvatureType.CONVEX
    assert square.get_monotonicity() == MonotonicityType.NONMONOTONIC

    cube = PowerIntNode(x, 3)
    assert cube.get_monotonicity() == MonotonicityType.NONDECREASING
    assert cube.get_curvature() == CurvatureType.NEITHER_CONVEX_NOR_CONCAVE

    identity = PowerIntNode(x, 1)
    assert identity.get_curvature() == CurvatureType.AFFINE
    assert identity.get_monotonicity() == MonotonicityType.NONDECREASING

    assert PowerIntNode(x, -2).get_curvature() == CurvatureType.NEITHER_CONVEX_NOR_CONCAVE
    assert PowerIntNode(x, -1).get_monotonicity() == MonotonicityType.NONMONOTONIC
    assert PowerIntNode(x, 0).get_curvature() == CurvatureType.CONSTANT
    assert PowerIntNode(x, 0).get_monotonicity() == MonotonicityType.CONSTANT
    assert PowerIntNode(sin(x), 2).get_curvature() == CurvatureType.NEITHER_CONVEX_NOR_CONCAVE

    constant_base = PowerIntNode(ConstantNode(3.0), 5)
    assert constant_base.get_curvature() == CurvatureType.CONSTANT
    assert constant_base.get_monotonicity() == MonotonicityType.CONSTANT


def test_power_int_algebraic_classes():
    x = VariableNode(0)
    assert PowerIntNode(x, 1).is_linear_in(X0)
    assert not PowerIntNode(x, 2).is_linear_in(X0)
    assert PowerIntNode(x, 2).is_polynomial_in(X0)
    assert not PowerIntNode(x, -3).is_polynomial_in(X0)
    assert PowerIntNode(x, -3).is_rational_in(X0)
    assert not PowerIntNode(sin(x), 2).is_rational_in(X0)


def test_sums_and_scaling():
    x = VariableNode(0)
    assert my_add(exp(x), PowerIntNode(x, 2)).get_curvature() == CurvatureType.CONVEX
    assert my_add(exp(x), log(x)).get_curvature() == CurvatureType.NEITHER_CONVEX_NOR_CONCAVE
    assert (exp(x) - log(x)).get_curvature() == CurvatureType.CONVEX

    scaled = my_prod(ConstantNode(-2.0), exp(x))
    assert scaled.get_curvature() == CurvatureType.CONCAVE
    assert scaled.get_monotonicity() == MonotonicityType.NONINCREASING

    divided = my_quotient(log(x), ConstantNode(-4.0))
    assert divided.get_curvature() == CurvatureType.CONVEX
    assert divided.get_monotonicity() == MonotonicityType.NONINCREASING

    assert my_prod(x, sin(x)).get_monotonicity() == MonotonicityType.NONMONOTONIC


def test_binary_algebraic_classes():
    x, y = VariableNode(0), VariableNode(1)
    both = [(DS, 0), (DS, 1)]
    assert my_add(x, y).is_linear_in(both)
    assert not my_prod(x, y).is_linear_in(both)
    assert my_prod(x, y).is_linear_in(X0)
    assert my_prod(x, y).is_polynomial_in(both)
    assert not my_quotient(x, y).is_polynomial_in(both)
    assert my_quotient(x, y).is_rational_in(both)
    assert my_quotient(x, y).is_linear_in(X0)
    assert not (x ** y).is_polynomial_in(both)
    assert not sin(x).is_linear_in(X0)
    assert sin(y).is_linear_in(X0)


def test_explicit_overrides_take_precedence():
    x = VariableNode(0)
    node = sin(x)
    assert node.get_curvature() == CurvatureType.NEITHER_CONVEX_NOR_CONCAVE
    node.set_curvature(CurvatureType.CONCAVE)
    node.set_monotonicity(MonotonicityType.NONDECREASING)
    assert node.get_curvature() == CurvatureType.CONCAVE
    assert node.get_monotonicity() == MonotonicityType.NONDECREASING

    copied = node.copy()
    assert copied.get_curvature() == CurvatureType.CONCAVE


def test_dependency_queries():
    u = VariableNode(1, VariableType.CONTROL)
    x = VariableNode(0)
    node = cos(u) * x
    assert node.is_depending_on_type(VariableType.CONTROL)
    assert node.is_depending_on_type(DS)
    assert not node.is_depending_on_type(VariableType.PARAMETER)
    assert node.is_depending_on([(VariableType.CONTROL, 1)])
    assert not node.is_depending_on([(VariableType.CONTROL, 0)])
    assert node.is_symbolic()
