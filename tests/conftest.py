import os
import tempfile

# Must run before quiz_server.db is imported: the engine is built at import time.
_DB_DIR = tempfile.mkdtemp(prefix="quiz_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["TESTING"] = "1"
os.environ.pop("ADMIN_TOKEN", None)
for _provider in ("GEMINI", "GROQ", "DEEPSEEK", "FIREWORKS"):
    os.environ.pop(f"{_provider}_ENABLED", None)
    os.environ.pop(f"{_provider}_API_KEY", None)
os.environ.pop("MOCK_AI_ENABLED", None)
os.environ.pop("AI_PREFERRED_PROVIDER", None)

import pytest  # noqa: E402

from quiz_server.db import create_db_and_tables, drop_db_and_tables  # noqa: E402
from quiz_server.services.ai.orchestrator import reset_orchestrator  # noqa: E402
from quiz_server.services.observability import telemetry  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_state():
    drop_db_and_tables()
    create_db_and_tables()
    telemetry.reset()
    reset_orchestrator()
    yield
    reset_orchestrator()
