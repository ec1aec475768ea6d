import math
import numpy as np
import pytest

from symbolic_ad import (
    ConstantNode, Expression, VariableNode, VariableType,
    sin, cos, exp, log, atan, tan, acos, my_power
)

DS = VariableType.DIFFERENTIAL_STATE
DIRECTIONS = [(DS, 0), (DS, 1), (DS, 2)]
POINT = np.array([0.7, -0.4, 1.3])


def build_test_function():
    x0, x1, x2 = VariableNode(0), VariableNode(1), VariableNode(2)
    return (x0 ** 2 * x1 + exp(x0 * x1) - log(x2) / (1 + x1 ** 2)
            + sin(x0) * atan(x2) + tan(x1) * x2 ** 3 + my_power(x2, x0))


def value_of(node):
    return Expression(node).evaluate(POINT)


def test_differentiate_matches_numeric_gradient():
    expr = Expression(build_test_function())
    grad = expr.gradient(POINT)
    for i in range(3):
        assert expr.differentiate(i).evaluate(POINT) == pytest.approx(grad[i], rel=1e-12)


def test_differentiate_unknown_index_is_zero():
    d = Expression(build_test_function()).differentiate(7)
    assert d.root.get_value() == 0.0


def test_forward_symbolic_matches_directional_derivative():
    node = build_test_function()
    seed = np.array([0.5, -1.0, 2.0])
    intermediates = []
    df = node.ad_forward_symbolic(DIRECTIONS, [ConstantNode(s) for s in seed], intermediates)
    expected = Expression(node).directional_derivative(POINT, seed)
    assert value_of(df) == pytest.approx(expected, rel=1e-12)
    assert intermediates
    assert len({id(e) for e in intermediates}) == len(intermediates)
    assert not any(e.is_constant() for e in intermediates)


def test_forward_symbolic_with_symbolic_seed():
    x0, x1 = VariableNode(0), VariableNode(1)
    node = sin(x0) * x1
    # seed (x1, 0): result is x1 * d/dx0 = x1^2 cos(x0)
    df = node.ad_forward_symbolic([(DS, 0), (DS, 1)], [x1, ConstantNode(0.0)])
    point = np.array([0.3, 2.0])
    assert Expression(df).evaluate(point) == pytest.approx(4.0 * math.cos(0.3))


def test_forward_symbolic_seed_length_mismatch():
    with pytest.raises(ValueError):
        build_test_function().ad_forward_symbolic(DIRECTIONS, [ConstantNode(1.0)])


def test_backward_symbolic_matches_gradient():
    node = build_test_function()
    df = [ConstantNode(0.0) for _ in DIRECTIONS]
    node.ad_backward_symbolic(DIRECTIONS, ConstantNode(1.0), df)
    grad = Expression(node).gradient(POINT)
    np.testing.assert_allclose([value_of(d) for d in df], grad, rtol=1e-12)


def test_backward_symbolic_subset_of_directions():
    node = build_test_function()
    df = [ConstantNode(0.0)]
    node.ad_backward_symbolic([(DS, 2)], ConstantNode(3.0), df)
    assert value_of(df[0]) == pytest.approx(3.0 * Expression(node).gradient(POINT)[2], rel=1e-12)


def test_symmetric_identity_seed():
    node = build_test_function()
    n = len(DIRECTIONS)
    S = [[ConstantNode(1.0 if i == j else 0.0) for j in range(n)] for i in range(n)]
    dfS, ldf, H = node.ad_symmetric(DIRECTIONS, ConstantNode(1.0), S)

    expr = Expression(node)
    grad = expr.gradient(POINT)
    hess = expr.hessian(POINT)
    np.testing.assert_allclose([value_of(d) for d in dfS], grad, rtol=1e-12)
    np.testing.assert_allclose([value_of(d) for d in ldf], grad, rtol=1e-12)
    np.testing.assert_allclose([[value_of(h) for h in row] for row in H], hess, rtol=1e-10, atol=1e-12)
    for i in range(n):
        for j in range(n):
            assert H[i][j] is H[j][i]


def test_symmetric_general_seed_and_weight():
    node = build_test_function()
    S_num = np.array([[1.0, 0.5], [-2.0, 0.0], [0.25, 3.0]])
    S = [[ConstantNode(v) for v in row] for row in S_num]
    intermediates = []
    dfS, ldf, H = node.ad_symmetric(DIRECTIONS, ConstantNode(2.0), S, intermediates)

    expr = Expression(node)
    grad = expr.gradient(POINT)
    hess = expr.hessian(POINT)
    np.testing.assert_allclose([value_of(d) for d in dfS], grad @ S_num, rtol=1e-12)
    np.testing.assert_allclose([value_of(d) for d in ldf], 2.0 * grad, rtol=1e-12)
    np.testing.assert_allclose([[value_of(h) for h in row] for row in H],
                               S_num.T @ (2.0 * hess) @ S_num, rtol=1e-10, atol=1e-12)
    assert len({id(e) for e in intermediates}) == len(intermediates)


def test_symmetric_rejects_misaligned_seed():
    S = [[ConstantNode(1.0)], [ConstantNode(0.0)]]
    with pytest.raises(ValueError):
        VariableNode(0).ad_symmetric(DIRECTIONS, ConstantNode(1.0), S)


def test_expression_symbolic_gradient_and_hessian():
    x0, x1 = VariableNode(0), VariableNode(1)
    expr = Expression(acos(x0 / 2) * exp(x1) + cos(x0 * x1))
    point = np.array([0.4, 0.9])
    directions = [(DS, 0), (DS, 1)]

    grad = [g.evaluate(point) for g in expr.symbolic_gradient(directions)]
    np.testing.assert_allclose(grad, expr.gradient(point), rtol=1e-12)

    hess = [[h.evaluate(point) for h in row] for row in expr.symbolic_hessian(directions)]
    np.testing.assert_allclose(hess, expr.hessian(point), rtol=1e-10, atol=1e-12)


def test_derivative_with_other_variable_types():
    u = VariableNode(0, VariableType.CONTROL)
    x = VariableNode(0)
    node = sin(u) * x
    expr = Expression(node)
    expr.load_indices()
    assert u.global_index == 0
    assert x.global_index == 1

    df = [ConstantNode(0.0)]
    node.ad_backward_symbolic([(VariableType.CONTROL, 0)], ConstantNode(1.0), df)
    assert Expression(df[0]).evaluate([0.2, 3.0]) == pytest.approx(math.cos(0.2) * 3.0)


def test_init_derivative_is_idempotent():
    node = build_test_function()
    node.init_derivative()
    caches = [(n.derivative, n.derivative2) for n in _interior_nodes(node)]
    node.init_derivative()
    node.differentiate(0)
    again = [(n.derivative, n.derivative2) for n in _interior_nodes(node)]
    for (d1, dd1), (d2, dd2) in zip(caches, again):
        assert d1 is d2
        assert dd1 is dd2


def _interior_nodes(node):
    from symbolic_ad.expression_tree.utils import get_all_nodes
    return [n for n in get_all_nodes(node) if n.children()]


def test_differentiate_matches_central_differences():
    node = build_test_function()
    expr = Expression(node)
    h = 1e-6
    for i in range(3):
        e = np.zeros(3)
        e[i] = h
        approx = (expr.evaluate(POINT + e) - expr.evaluate(POINT - e)) / (2 * h)
        assert expr.differentiate(i).evaluate(POINT) == pytest.approx(approx, rel=1e-6, abs=1e-8)


def test_symbolic_sweeps_stay_small_on_shared_dags():
    y = sin(VariableNode(0))
    for _ in range(10):
        y = y * y
    directions = [(DS, 0)]

    df = [ConstantNode(0.0)]
    y.ad_backward_symbolic(directions, ConstantNode(1.0), df)
    _, _, H = y.ad_symmetric(directions, ConstantNode(1.0), [[ConstantNode(1.0)]])
    assert df[0].size() < 100
    assert H[0][0].size() < 300

    expr = Expression(y)
    x = np.array([0.9])
    assert Expression(df[0]).evaluate(x) == pytest.approx(expr.gradient(x)[0], rel=1e-10)
    assert Expression(H[0][0]).evaluate(x) == pytest.approx(expr.hessian(x)[0, 0], rel=1e-10)


def test_intermediates_are_registered_once_across_sweeps():
    node = build_test_function()
    intermediates = []
    node.ad_backward_symbolic(DIRECTIONS, ConstantNode(1.0), [ConstantNode(0.0)] * 3, intermediates)
    count = len(intermediates)
    assert count > 0
    node.ad_backward_symbolic(DIRECTIONS, ConstantNode(1.0), [ConstantNode(0.0)] * 3, intermediates)
    node.ad_forward_symbolic(DIRECTIONS, [ConstantNode(1.0)] * 3, intermediates)
    assert len({id(e) for e in intermediates}) == len(intermediates)
    assert len(intermediates) == count
