import pytest

from symbolic_ad import reset_config, clear_global_pool, configure_logging, LogLevel


@pytest.fixture(autouse=True)
def fresh_engine_state():
    """Every test starts from the default configuration and an empty global pool"""
    reset_config()
    clear_global_pool()
    yield
    reset_config()
    clear_global_pool()
    configure_logging(LogLevel.MINIMAL)
