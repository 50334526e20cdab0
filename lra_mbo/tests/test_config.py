import logging

import pytest

from lra_mbo import global_config
from lra_mbo.arith.model_based_opt import IneqType, ModelBasedOpt
from lra_mbo.global_params import GlobalConfig
from lra_mbo.utils.exceptions import TableauInvariantError


@pytest.fixture
def config():
    saved = global_config.as_dict()
    yield global_config
    for name, value in saved.items():
        global_config.set_option(name, value)


def _tableau():
    mbo = ModelBasedOpt()
    x = mbo.add_var(0)
    mbo.add_constraint([(x, 1)], -5, IneqType.LE)
    mbo.set_objective([(x, 1)], 0)
    return mbo, x


def test_singleton():
    assert GlobalConfig() is global_config


def test_set_option_validation(config):
    with pytest.raises(ValueError):
        config.set_option("no_such_option", True)
    with pytest.raises(ValueError):
        config.set_option("trace", "yes")
    with pytest.raises(ValueError):
        config.set_option("max_iterations", 0)
    config.set_option("max_iterations", 7)
    assert config.get_option("max_iterations") == 7


def test_env_defaults(config, monkeypatch):
    monkeypatch.setenv("LRA_MBO_CHECK_INVARIANTS", "0")
    monkeypatch.setenv("LRA_MBO_TRACE", "yes")
    monkeypatch.setenv("LRA_MBO_MAX_ITERATIONS", "not-a-number")
    config.reset()
    assert config.check_invariants is False
    assert config.trace is True
    assert config.max_iterations == 1000


def test_debug_env_turns_on_trace(config, monkeypatch):
    monkeypatch.delenv("LRA_MBO_TRACE", raising=False)
    monkeypatch.setenv("LRA_MBO_DEBUG", "1")
    config.reset()
    assert config.trace is True
    monkeypatch.setenv("LRA_MBO_TRACE", "0")
    config.reset()
    assert config.trace is False


def test_disabled_checks_skip_row_checks(config):
    mbo, x = _tableau()
    config.set_option("check_invariants", False)
    # violates x - 5 <= 0, but nothing re-checks the row
    mbo.update_value(x, 10)
    with pytest.raises(TableauInvariantError):
        mbo.invariant()


def test_enabled_checks(config):
    mbo, x = _tableau()
    config.set_option("check_invariants", True)
    with pytest.raises(TableauInvariantError):
        mbo.update_value(x, 10)


def test_trace_dumps_tableau(config, caplog):
    mbo, _ = _tableau()
    config.set_option("trace", True)
    with caplog.at_level(logging.DEBUG, logger="lra_mbo.arith.model_based_opt"):
        mbo.maximize()
    assert any("tableau" in r.getMessage() and "value:" in r.getMessage() for r in caplog.records)


def test_no_trace_by_default(config, caplog):
    mbo, _ = _tableau()
    config.set_option("trace", False)
    with caplog.at_level(logging.DEBUG, logger="lra_mbo.arith.model_based_opt"):
        mbo.maximize()
    assert not any(r.getMessage().startswith("tableau") for r in caplog.records)
