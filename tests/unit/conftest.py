import pathlib
import tempfile
from unittest.mock import patch

import pytest

from graphtransfer.config import settings as settings_module


@pytest.fixture
def temp_config_dir():
    """Fixture to create a temporary config directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        tmpdir = pathlib.Path(tmpdir)
        with patch.object(settings_module, "CONFIG_DIR", tmpdir):
            yield tmpdir


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep GRAPHTRANSFER_* variables from the developer's shell out of tests."""
    for env_var_name in settings_module._ENV_MAP.values():
        monkeypatch.delenv(env_var_name, raising=False)
