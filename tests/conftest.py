import pytest
from fakes import Portal

from cedulascraper.cedulasconfig import Config


@pytest.fixture
def fast_cfg():
    cfg = Config(portal_url="https://portal.example/")
    cfg.timeouts.selector_ms = 200
    cfg.timeouts.outcome_ms = 200
    cfg.timeouts.poll_interval_ms = 5
    cfg.timeouts.probe_ms = 1
    cfg.timeouts.button_probe_ms = 1
    return cfg


@pytest.fixture
def portal():
    return Portal()
