"""Shared test fixtures for PageGuard."""

import io

import fitz
import pytest
from httpx import ASGITransport, AsyncClient
from PIL import Image


API_KEY = "test-admin-api-key"
MASTER_KEY_HEX = "00112233445566778899aabbccddeeff" * 2
MASTER_KEY = bytes.fromhex(MASTER_KEY_HEX)


def make_pdf(pages: int = 3) -> bytes:
    """A small real PDF with one line of text per page."""
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=200, height=260)
        page.insert_text((20, 40), f"Page {i + 1}", fontsize=14)
    data = doc.tobytes()
    doc.close()
    return data


def make_png(width: int = 120, height: int = 80, color=(255, 255, 255)) -> bytes:
    out = io.BytesIO()
    Image.new("RGB", (width, height), color).save(out, format="PNG")
    return out.getvalue()


@pytest.fixture
def pdf_factory():
    return make_pdf


@pytest.fixture
def png_factory():
    return make_png


@pytest.fixture
def api_key():
    return API_KEY


@pytest.fixture
def storage_dir(tmp_path):
    path = tmp_path / "storage"
    path.mkdir()
    return path


@pytest.fixture
def app(storage_dir, monkeypatch):
    """Create a test app with in-memory DB and a temp storage dir."""
    monkeypatch.setenv("PAGEGUARD_DB_URL", "sqlite+aiosqlite://")
    monkeypatch.setenv("PAGEGUARD_API_KEY", API_KEY)
    monkeypatch.setenv("PAGEGUARD_ENCRYPTION_MASTER_KEY", MASTER_KEY_HEX)
    monkeypatch.setenv("PAGEGUARD_STORAGE_DIR", str(storage_dir))
    monkeypatch.setenv("PAGEGUARD_RATE_LIMIT_MAX", "200")

    # Clear caches and singletons so new env vars take effect
    from pageguard.common.config import get_settings
    get_settings.cache_clear()

    from pageguard.deps import reset_singletons
    reset_singletons()

    from pageguard.app import create_app
    return create_app()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from pageguard.deps import get_db
    db = get_db()
    await db.init()
    await db.create_all()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()


@pytest.fixture
def admin_headers():
    return {"X-PageGuard-Api-Key": API_KEY}


@pytest.fixture
def register_document(client, storage_dir):
    """Encrypt ``data`` into storage and register it through the app's DB."""
    from pageguard.deps import get_db, get_registry
    from pageguard.documents.crypto import encrypt_buffer
    from pageguard.documents.registry import WatermarkPolicy

    async def _register(
        doc_id: str = "doc-1",
        data: bytes | None = None,
        content_type: str = "application/pdf",
        password: str | None = None,
        policy: WatermarkPolicy | None = None,
        title: str = "Quarterly Report",
    ):
        payload = data if data is not None else make_pdf()
        filename = f"{doc_id}.enc"
        (storage_dir / filename).write_bytes(encrypt_buffer(payload, MASTER_KEY))
        async with get_db().get_session() as session:
            return await get_registry().create_document(
                session,
                doc_id=doc_id,
                title=title,
                encrypted_path=f"storage/{filename}",
                content_type=content_type,
                watermark_policy=policy,
                password=password,
            )

    return _register
