"""
Pytest configuration and fixtures for Publication Backend tests.
"""

import pytest
from fastapi.testclient import TestClient

from publication_backend.audit_log import AuditLog
from publication_backend.configuration import load_settings
from publication_backend.content_store import LocalContentStore
from publication_backend.database import PublicationStore
from publication_backend.lifecycle import PublicationLifecycle
from publication_backend.main import create_app
from publication_backend.resolver import PublicationResolver

TEST_TOKEN = "test-token-12345"
PUBLIC_BASE_URL = "https://forms.example.com"


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "database.sqlite"


@pytest.fixture
def content_root(tmp_path):
    return tmp_path / "publications"


@pytest.fixture
def store(db_path):
    return PublicationStore(db_path)


@pytest.fixture
def audit(db_path):
    return AuditLog(db_path)


@pytest.fixture
def content(content_root):
    return LocalContentStore(content_root)


@pytest.fixture
def lifecycle(store, content, audit):
    return PublicationLifecycle(store, content, audit, public_base_url=PUBLIC_BASE_URL)


@pytest.fixture
def resolver(store, content, audit, lifecycle):
    return PublicationResolver(store, content, audit, locks=lifecycle.locks)


@pytest.fixture
def settings_overrides(db_path, content_root):
    return {
        "auth": {"token": TEST_TOKEN},
        "storage": {"database_path": str(db_path)},
        "content": {"backend": "local", "root": str(content_root)},
        "links": {"public_base_url": None},
    }


@pytest.fixture
def settings(settings_overrides):
    return load_settings(settings_overrides)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    """Create a test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {TEST_TOKEN}"}


@pytest.fixture
def sample_pdf():
    """Minimal PDF bytes, as generated before the QR stamp is added."""
    return b"""%PDF-1.4
1 0 obj
<< /Type /Catalog /Pages 2 0 R >>
endobj
2 0 obj
<< /Type /Pages /Kids [3 0 R] /Count 1 >>
endobj
3 0 obj
<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] >>
endobj
trailer
<< /Size 4 /Root 1 0 R >>
%%EOF"""


@pytest.fixture
def stamped_pdf(sample_pdf):
    """The same form after the QR code has been embedded."""
    return sample_pdf.replace(b"%%EOF", b"% qr-stamp\n%%EOF")
