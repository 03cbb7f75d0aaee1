"""Global pytest configuration and fixtures."""

import logging
import os
import pytest
import sys
import tempfile
from pathlib import Path
from unittest.mock import patch

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from tests.utils import FakeObjectStorage

ENV_VARS = (
    "S3_BUCKET",
    "AWS_REGION",
    "S3_BACKUP_PREFIX",
    "S3_MAX_BACKUPS",
    "S3_BACKUP_EXTENSIONS",
    "CLOUDFRONT_DISTRIBUTION_ID",
    "CDN_DOMAIN",
    "SKIP_BUILD",
    "SKIP_INVALIDATION",
    "CDN_BUILD_COMMAND",
    "DISABLE_APP_LOGGING",
)


@pytest.fixture(autouse=True)
def clean_env():
    """Run every test without media-vault variables from the developer's shell."""
    saved = {name: os.environ.pop(name) for name in ENV_VARS if name in os.environ}
    with patch("media_vault.config.load_dotenv"):
        yield
    for name in ENV_VARS:
        os.environ.pop(name, None)
    os.environ.update(saved)


@pytest.fixture(autouse=True)
def restore_package_logger():
    """Undo handlers and propagation installed by CLI runs."""
    package_logger = logging.getLogger("media-vault")
    handlers = list(package_logger.handlers)
    level = package_logger.level
    propagate = package_logger.propagate
    yield
    package_logger.handlers[:] = handlers
    package_logger.setLevel(level)
    package_logger.propagate = propagate


@pytest.fixture
def temp_dir():
    """Create temporary working directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_storage():
    """Empty in-memory bucket."""
    return FakeObjectStorage()
