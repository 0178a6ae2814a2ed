"""
Test configuration.

Settings are read once and cached, so the environment has to point at
throwaway storage before anything from app is imported.
"""
import os
import tempfile

_TEST_ROOT = tempfile.mkdtemp(prefix="qr-ordering-tests-")

os.environ["ENV_MODE"] = "development"
os.environ["DEBUG"] = "false"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_ROOT, 'api.db')}"
os.environ["DATA_DIRECTORY"] = os.path.join(_TEST_ROOT, "data")
os.environ["CART_DIRECTORY"] = os.path.join(_TEST_ROOT, "carts")
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["REDIS_URL"] = "redis://localhost:6399/0"
