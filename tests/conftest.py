"""
Shared fixtures: the real app wired to a throwaway SQLite database.
Environment must be set before excel_analytics.config is first imported.
"""

import io
import os
import tempfile
from pathlib import Path

_TMP = Path(tempfile.mkdtemp(prefix="excel-analytics-tests-"))
_DB_FILE = _TMP / "test.db"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_FILE}"
os.environ["UPLOAD_DIR"] = str(_TMP / "uploads")
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["FIREBASE_PROJECT_ID"] = "excel-analytics-test"
os.environ.pop("SMTP_HOST", None)

import pandas as pd  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from excel_analytics.config import settings  # noqa: E402
from excel_analytics.main import app  # noqa: E402

API = settings.API_PREFIX
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def client():
    if _DB_FILE.exists():
        _DB_FILE.unlink()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ── Helpers ───────────────────────────────────────────────────────────────────
def register(client, email, password="s3cret-pass", name=None, role=None):
    body = {"name": name or email.split("@")[0], "email": email, "password": password}
    if role:
        body["role"] = role
    return client.post(f"{API}/auth/register", json=body)


def login(client, email, password="s3cret-pass"):
    return client.post(f"{API}/auth/login", json={"email": email, "password": password})


def auth_headers(client, email, role=None, password="s3cret-pass"):
    assert register(client, email, password=password, role=role).status_code == 201
    resp = login(client, email, password=password)
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


def user_id_for(client, admin_headers, email):
    users = client.get(f"{API}/admin/users", headers=admin_headers).json()
    return next(u["id"] for u in users if u["email"] == email)


def xlsx_bytes(frame: pd.DataFrame) -> bytes:
    buf = io.BytesIO()
    frame.to_excel(buf, index=False, engine="openpyxl")
    return buf.getvalue()


def sales_frame() -> pd.DataFrame:
    return pd.DataFrame({
        "Region": ["North", "South", "East", "West"],
        "Units": [120, 95, 143, 80],
        "Revenue": [2400.5, 1900.0, 2860.25, 1600.0],
        "Cost": [1500, 1200, 1700, 1000],
    })


def sample_rows(n=3):
    return [{"Month": f"M{i}", "Sales": i * 10, "Profit": i * 2} for i in range(1, n + 1)]


@pytest.fixture
def user_headers(client):
    return auth_headers(client, "alice@example.com")


@pytest.fixture
def admin_headers(client):
    return auth_headers(client, "root@example.com", role="admin")
