"""Shared fixtures."""

import pytest

from vecdex.cache import reset_cache
from vecdex.config import Config, reset_config


@pytest.fixture
def config(tmp_path):
    """Config whose stores live in a temporary directory."""
    cfg = Config()
    cfg.store_dir = tmp_path / "stores"
    return cfg


@pytest.fixture(autouse=True)
def _reset_singletons():
    reset_config()
    reset_cache()
    yield
    reset_config()
    reset_cache()
