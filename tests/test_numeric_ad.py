import math
import numpy as np
import pytest
import sympy as sp

from symbolic_ad import (
    BufferPool, Expression, ExpressionValidator, VariableNode,
    sin, cos, exp, log, atan, asin, my_power
)
from symbolic_ad.expression_tree.utils import count_tree_nodes


def build_test_function():
    """f(x0, x1, x2) = x0^2 x1 + exp(x0 x1) - log(x2) / (1 + x1^2) + sin(x0) atan(x2)"""
    x0, x1, x2 = VariableNode(0), VariableNode(1), VariableNode(2)
    return (x0 ** 2 * x1 + exp(x0 * x1) - log(x2) / (1 + x1 ** 2)
            + sin(x0) * atan(x2))


def sympy_reference():
    x0, x1, x2 = sp.symbols('x0:3', real=True)
    f = (x0 ** 2 * x1 + sp.exp(x0 * x1) - sp.log(x2) / (1 + x1 ** 2)
         + sp.sin(x0) * sp.atan(x2))
    return f, (x0, x1, x2)


POINT = np.array([0.7, -0.4, 1.3])


def test_value_matches_sympy():
    f, symbols = sympy_reference()
    expected = float(f.subs(dict(zip(symbols, POINT))))
    assert Expression(build_test_function()).evaluate(POINT) == pytest.approx(expected)


def test_forward_backward_and_finite_differences_agree():
    node = build_test_function()
    expr = Expression(node)
    grad = expr.gradient(POINT)

    for i in range(3):
        e = np.zeros(3)
        e[i] = 1.0
        assert expr.directional_derivative(POINT, e) == pytest.approx(grad[i], rel=1e-12, abs=1e-12)

    passed, error = ExpressionValidator.check_gradient(node, POINT)
    print(f"gradient check error: {error:.2e}")
    assert passed


def test_gradient_matches_sympy():
    f, symbols = sympy_reference()
    subs = dict(zip(symbols, POINT))
    expected = np.array([float(sp.diff(f, s).subs(subs)) for s in symbols])
    np.testing.assert_allclose(Expression(build_test_function()).gradient(POINT), expected, rtol=1e-10)


def test_hessian_matches_sympy():
    f, symbols = sympy_reference()
    subs = dict(zip(symbols, POINT))
    expected = np.array(sp.hessian(f, symbols).subs(subs), dtype=float)
    H = Expression(build_test_function()).hessian(POINT)
    np.testing.assert_allclose(H, expected, rtol=1e-9, atol=1e-12)
    np.testing.assert_allclose(H, H.T, rtol=1e-12, atol=1e-12)


def test_second_order_duality():
    """s1' H s2 from forward2 equals (H s1) . s2 from backward2"""
    node = build_test_function()
    pool = BufferPool()
    rng = np.random.default_rng(42)
    s1 = rng.normal(size=3)
    s2 = rng.normal(size=3)

    node.ad_forward(0, POINT, s1, pool)
    df_fwd, ddf_fwd = node.ad_forward2(0, s2, np.zeros(3), pool)

    df, ddf = np.zeros(3), np.zeros(3)
    node.ad_backward2(0, 1.0, 0.0, df, ddf, pool)

    assert ddf_fwd == pytest.approx(float(ddf @ s2), rel=1e-10)
    assert df_fwd == pytest.approx(float(df @ s2), rel=1e-10)


def test_backward2_second_seed_adds_gradient():
    node = build_test_function()
    pool = BufferPool()
    v = np.array([0.3, 0.1, -0.2])
    node.ad_forward(0, POINT, v, pool)

    df_a, ddf_a = np.zeros(3), np.zeros(3)
    node.ad_backward2(0, 1.0, 0.0, df_a, ddf_a, pool)
    df_b, ddf_b = np.zeros(3), np.zeros(3)
    node.ad_backward2(0, 1.0, 2.0, df_b, ddf_b, pool)

    np.testing.assert_allclose(df_a, df_b)
    np.testing.assert_allclose(ddf_b - ddf_a, 2.0 * df_a, rtol=1e-12, atol=1e-12)


def test_buffered_forward_reuses_primal_values():
    node = build_test_function()
    pool = BufferPool()
    node.ad_forward(0, POINT, np.zeros(3), pool)
    e = np.array([0.0, 1.0, 0.0])
    _, expected = node.ad_forward(1, POINT, e, pool)
    assert node.ad_forward_buffered(0, e, pool) == pytest.approx(expected)


def test_slots_are_independent():
    expr = Expression(build_test_function())
    points = np.array([[0.1, 0.2, 0.3], [1.0, -1.0, 2.0], [0.5, 0.5, 0.5]])
    values = expr.evaluate_batch(points)

    grad = np.zeros(3)
    expr.root.ad_backward(1, 1.0, grad, expr.buffers)
    np.testing.assert_allclose(values, [expr.evaluate(p) for p in points])
    # reverse sweep on slot 1 only needs the primal values buffered by evaluate_batch
    np.testing.assert_allclose(grad, Expression(build_test_function()).gradient(points[1]))


def test_shared_subexpression_gradient():
    x = VariableNode(0)
    shared = sin(x) * x
    node = shared * shared + cos(shared)
    expr = Expression(node)
    t = 0.9
    g = math.sin(t) * t
    dg = math.cos(t) * t + math.sin(t)
    assert expr.gradient([t])[0] == pytest.approx(2.0 * g * dg - math.sin(g) * dg)


def test_real_power_exponent_gradient():
    x, y = VariableNode(0), VariableNode(1)
    node = my_power(x, y) + asin(y / 4)
    passed, _ = ExpressionValidator.check_gradient(node, [1.7, 0.6])
    assert passed


def repeated_square(depth):
    """sin(x) squared `depth` times by multiplying a node with itself"""
    y = sin(VariableNode(0))
    for _ in range(depth):
        y = y * y
    return y


def test_shared_nodes_are_swept_once_per_pass():
    depth = 40
    node = repeated_square(depth)
    assert node.size() == depth + 2
    assert count_tree_nodes(node) > 2 ** depth

    # sin(pi/2) is exactly one, so every level doubles the derivative exactly
    expr = Expression(node)
    x = [math.pi / 2]
    assert expr.evaluate(x) == pytest.approx(1.0)
    assert expr.directional_derivative(x, [1.0]) == pytest.approx(2.0 ** depth * math.cos(math.pi / 2), rel=1e-12)
    assert expr.gradient(x)[0] == pytest.approx(2.0 ** depth * math.cos(math.pi / 2), rel=1e-12)
    assert np.isfinite(expr.hessian(x)[0, 0])


def test_adjoints_accumulate_over_shared_paths():
    node = repeated_square(6)
    expr = Expression(node)
    x = np.array([0.9])
    # f = sin(x)^64
    s, c = math.sin(0.9), math.cos(0.9)
    assert expr.gradient(x)[0] == pytest.approx(64 * s ** 63 * c, rel=1e-12)
    expected = 64 * 63 * s ** 62 * c ** 2 - 64 * s ** 64
    assert expr.hessian(x)[0, 0] == pytest.approx(expected, rel=1e-10)
