# Point the outbox at a throwaway SQLite file before `repo` is imported.
import os
import tempfile

import pytest

os.environ["DATABASE_URL"] = f"sqlite:///{tempfile.mkdtemp()}/messaging.db"
for var in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_WHATSAPP_NUMBER"):
    os.environ.pop(var, None)


@pytest.fixture
def api():
    from fastapi.testclient import TestClient
    import main

    with TestClient(main.app) as c:
        yield c
