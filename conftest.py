"""Configure pytest for the plans service."""
import os
import sys
import tempfile
from pathlib import Path

# =============================================================================
# Test Environment Configuration
# =============================================================================
# Set environment for tests BEFORE any imports
# persistence.db reads PLANS_DB_PATH at import time
_test_db_dir = tempfile.mkdtemp(prefix="plans-tests-")
os.environ.setdefault("PLANS_DB_PATH", str(Path(_test_db_dir) / "plans-test.db"))
os.environ.setdefault("PLANS_ENV", "test")
os.environ.setdefault("PLANS_LEDGER_BACKEND", "memory")

# Make top-level packages importable without an install
app_path = Path(__file__).parent
if str(app_path) not in sys.path:
    sys.path.insert(0, str(app_path))


def pytest_configure(config):
    """Ensure environment is set before test collection."""
    os.environ.setdefault("PLANS_ENV", "test")
    os.environ.setdefault("PLANS_LEDGER_BACKEND", "memory")
