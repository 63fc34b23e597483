import sys
from pathlib import Path

import pytest

# Ensure the src directory and the test helpers are on the Python path for imports
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / 'src'
TESTS = ROOT / 'tests'
for path in (SRC, TESTS):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from inscription_reader.core import error_formatting  # noqa: E402
from inscription_reader.services import configuration_service  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep tests away from the user's settings, environment and error log."""
    for name in (configuration_service.ENV_BACKEND_URL,
                 configuration_service.ENV_TIMEOUT,
                 configuration_service.ENV_SESSION_MODE):
        monkeypatch.delenv(name, raising=False)
    error_formatting.configure_error_logger(None)
    yield
    error_formatting.configure_error_logger(None)
