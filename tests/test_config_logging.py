import logging
import math
import numpy as np
import pytest

from symbolic_ad import (
    DomainError, EngineConfig, Expression, ExpressionValidator, LogLevel, ReturnValue,
    VariableNode, configure_logging, get_config, get_logger, set_config, reset_config,
    log, my_quotient, sin
)


def test_config_defaults():
    config = get_config()
    assert config.initial_buffer_size == 1
    assert config.check_finite
    assert config.log_level == LogLevel.MINIMAL


@pytest.mark.parametrize("overrides", [
    {"initial_buffer_size": 0},
    {"finite_difference_step": 0.0},
    {"derivative_tolerance": -1.0},
])
def test_config_validation(overrides):
    with pytest.raises(ValueError):
        EngineConfig(**overrides)


def test_set_and_reset_config():
    set_config(derivative_tolerance=1e-3)
    assert get_config().derivative_tolerance == 1e-3
    reset_config()
    assert get_config().derivative_tolerance == 1e-6


def test_set_config_updates_log_level():
    set_config(log_level=LogLevel.VERBOSE)
    assert get_logger().log_level == LogLevel.VERBOSE


def test_check_finite_can_be_disabled():
    node = my_quotient(1.0, VariableNode(0))
    with pytest.raises(DomainError):
        Expression(node).evaluate([0.0])

    set_config(check_finite=False)
    assert math.isinf(Expression(node).evaluate([0.0]))
    # operator domains are still enforced
    with pytest.raises(DomainError):
        Expression(log(VariableNode(0))).evaluate([-1.0])


def test_try_evaluate_reports_nan():
    expr = Expression(log(VariableNode(0)))
    status, value = expr.try_evaluate([-1.0])
    assert status == ReturnValue.RET_NAN
    assert math.isnan(value)

    status, value = expr.try_evaluate([1.0])
    assert status == ReturnValue.SUCCESSFUL_RETURN
    assert value == 0.0


def test_validator():
    x = VariableNode(0)
    assert ExpressionValidator.is_valid_expression(sin(x))
    assert ExpressionValidator.is_valid_expression(log(x), np.array([[1.0], [2.0]]))
    assert not ExpressionValidator.is_valid_expression(log(x), np.array([[1.0], [-2.0]]))


def test_verbose_logging_to_file(tmp_path):
    log_path = tmp_path / "engine.log"
    configure_logging(LogLevel.VERBOSE, log_to_file=True, log_file_path=str(log_path))

    node = sin(VariableNode(0))
    Expression(node).evaluate([0.2], slot=3)
    node.differentiate(0)

    for handler in get_logger().logger.handlers:
        handler.flush()
    text = log_path.read_text()
    assert "grown" in text
    assert "derivative caches" in text


def test_silent_logger_has_no_console_handler():
    logger = configure_logging(LogLevel.SILENT)
    assert not any(isinstance(h, logging.StreamHandler) for h in logger.logger.handlers)


def test_registry_size_and_failed_gradient_check_are_logged(tmp_path):
    log_path = tmp_path / "engine.log"
    configure_logging(LogLevel.MODERATE, log_to_file=True, log_file_path=str(log_path))

    x = VariableNode(0)
    Expression(sin(x) * VariableNode(1)).load_indices()
    passed, _ = ExpressionValidator.check_gradient(sin(x), [0.3], step=0.5)
    assert not passed

    for handler in get_logger().logger.handlers:
        handler.flush()
    text = log_path.read_text()
    assert "2 variables registered" in text
    assert "WARNING - gradient check failed" in text
