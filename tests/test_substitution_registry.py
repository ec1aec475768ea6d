import math
import numpy as np
import pytest

from symbolic_ad import (
    ConstantNode, Expression, SymbolicIndexList, VariableNode, VariableType, sin, exp, my_add
)

DS = VariableType.DIFFERENTIAL_STATE


def test_substitute_constant():
    x0, x1 = VariableNode(0), VariableNode(1)
    expr = Expression(x0 * x1 + sin(x0))
    result = expr.substitute(0, 2.0)
    assert result.evaluate([100.0, 3.0]) == pytest.approx(6.0 + math.sin(2.0))


def test_substitute_expression_round_trip():
    x0, x1 = VariableNode(0), VariableNode(1)
    node = exp(x0) * x1 - x0 ** 2
    replaced = node.substitute(0, x1 + 1)
    for t in (0.0, 0.5, -1.2):
        direct = Expression(node).evaluate([t + 1, t])
        assert Expression(replaced).evaluate([123.0, t]) == pytest.approx(direct)


def test_substitute_keeps_unchanged_subtrees():
    x0, x1 = VariableNode(0), VariableNode(1)
    left = sin(x0)
    node = my_add(left, x1)
    replaced = node.substitute(1, ConstantNode(4.0))
    assert replaced is not node
    assert replaced.argument1 is left
    assert node.substitute(5, ConstantNode(4.0)) is node


def test_substitute_preserves_sharing():
    x0 = VariableNode(0)
    shared = sin(x0)
    node = shared * shared
    replaced = node.substitute(0, VariableNode(1))
    assert replaced.argument1 is replaced.argument2
    assert replaced.argument1 is not shared


def test_registry_assigns_sequential_indices():
    registry = SymbolicIndexList()
    assert registry.add_new_element(DS, 3) == (False, 0)
    assert registry.add_new_element(DS, 3) == (True, 0)
    assert registry.add_new_element(VariableType.CONTROL, 3) == (False, 1)
    assert registry.add_new_element(DS, 0) == (False, 2)
    assert registry.number_of_variables() == 3
    assert registry.number_of_variables(DS) == 2
    assert registry.index_of(VariableType.CONTROL, 3) == 1
    assert registry.index_of(VariableType.PARAMETER, 0) is None
    assert registry.variables() == [(DS, 3), (VariableType.CONTROL, 3), (DS, 0)]


class CountingIndexList(SymbolicIndexList):

    def __init__(self):
        super().__init__()
        self.calls = 0

    def add_new_element(self, var_type, component):
        self.calls += 1
        return super().add_new_element(var_type, component)


def test_shared_subtree_is_registered_once():
    x = VariableNode(0)
    shared = exp(x)
    node = shared + shared * shared
    registry = CountingIndexList()
    node.enumerate_variables(registry)
    assert registry.calls == 1
    assert registry.number_of_variables() == 1


def test_load_indices_wires_global_positions():
    p = VariableNode(4, VariableType.PARAMETER)
    x = VariableNode(7)
    expr = Expression(p * x + sin(x))
    registry = expr.load_indices()
    assert registry.number_of_variables() == 2
    assert p.global_index == 0
    assert x.global_index == 1
    assert expr.evaluate([2.0, 0.5]) == pytest.approx(1.0 + math.sin(0.5))
    np.testing.assert_allclose(expr.gradient([2.0, 0.5]), [0.5, 2.0 + math.cos(0.5)])


def test_expression_variables():
    u = VariableNode(2, VariableType.CONTROL)
    x = VariableNode(0)
    expr = Expression(sin(u) + x * u)
    assert expr.variables() == [(VariableType.CONTROL, 2), (DS, 0)]
    assert expr.is_depending_on(VariableType.CONTROL)
    assert not expr.is_depending_on(VariableType.TIME)
