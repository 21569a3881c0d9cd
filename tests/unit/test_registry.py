"""Tests for the document registry and storage paths."""

import pytest

from pageguard.common.config import PageGuardSettings
from pageguard.common.database import DatabaseManager
from pageguard.common.exceptions import DocumentNotFoundError
from pageguard.documents.crypto import verify_password
from pageguard.documents.registry import (
    ClearPassword,
    DocumentMetadata,
    DocumentRegistry,
    KeepPassword,
    SetPassword,
    WatermarkPolicy,
)
from pageguard.documents.storage import read_encrypted, resolve_storage_path, write_encrypted


def make_settings(**overrides) -> PageGuardSettings:
    defaults = {"db_url": "sqlite+aiosqlite://"}
    defaults.update(overrides)
    return PageGuardSettings(**defaults)


@pytest.fixture
async def db():
    manager = DatabaseManager(make_settings())
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def registry():
    return DocumentRegistry()


async def _create(db, registry, **kwargs):
    params = {"doc_id": "doc-1", "title": "Report", "encrypted_path": "storage/doc-1.enc"}
    params.update(kwargs)
    async with db.get_session() as session:
        return await registry.create_document(session, **params)


class TestWatermarkPolicy:
    def test_defaults(self):
        policy = WatermarkPolicy.from_dict(None)
        assert policy.show_ip and policy.show_timestamp and policy.show_session_id
        assert policy.custom_text is None

    def test_camel_case_keys(self):
        policy = WatermarkPolicy.from_dict({"showIp": False, "customText": "DRAFT"})
        assert policy.show_ip is False
        assert policy.show_timestamp is True
        assert policy.custom_text == "DRAFT"

    def test_round_trip_dict(self):
        policy = WatermarkPolicy(show_session_id=False, custom_text="X")
        assert WatermarkPolicy.from_dict(policy.to_dict()) == policy


class TestDocumentMetadata:
    def test_flags(self):
        meta = DocumentMetadata(
            doc_id="d", title="t", content_type="image/png", encrypted_path="p",
            page_count=None, status="inactive", password_hash="a:b",
        )
        assert meta.is_image is True
        assert meta.is_active is False
        assert meta.requires_password is True


class TestRegistry:
    async def test_create_and_get(self, db, registry):
        created = await _create(db, registry, watermark_policy=WatermarkPolicy(custom_text="X"))
        async with db.get_session() as session:
            fetched = await registry.get_document(session, "doc-1")
        assert fetched == created
        assert fetched.is_active
        assert fetched.watermark_policy.custom_text == "X"
        assert fetched.requires_password is False

    async def test_get_missing(self, db, registry):
        async with db.get_session() as session:
            assert await registry.get_document(session, "nope") is None

    async def test_password_hashed(self, db, registry):
        meta = await _create(db, registry, password="s3cret")
        assert meta.password_hash != "s3cret"
        assert verify_password("s3cret", meta.password_hash)

    async def test_set_page_count(self, db, registry):
        await _create(db, registry)
        async with db.get_session() as session:
            await registry.set_page_count(session, "doc-1", 12)
        async with db.get_session() as session:
            assert (await registry.get_document(session, "doc-1")).page_count == 12

    async def test_set_status(self, db, registry):
        await _create(db, registry)
        async with db.get_session() as session:
            meta = await registry.set_status(session, "doc-1", "inactive")
        assert meta.is_active is False

    async def test_set_status_unknown(self, db, registry):
        await _create(db, registry)
        with pytest.raises(ValueError):
            async with db.get_session() as session:
                await registry.set_status(session, "doc-1", "archived")

    async def test_missing_document_errors(self, db, registry):
        with pytest.raises(DocumentNotFoundError):
            async with db.get_session() as session:
                await registry.set_page_count(session, "nope", 3)


class TestPasswordChange:
    async def test_keep(self, db, registry):
        original = await _create(db, registry, password="old")
        async with db.get_session() as session:
            meta = await registry.change_password(session, "doc-1", KeepPassword())
        assert meta.password_hash == original.password_hash

    async def test_clear(self, db, registry):
        await _create(db, registry, password="old")
        async with db.get_session() as session:
            meta = await registry.change_password(session, "doc-1", ClearPassword())
        assert meta.requires_password is False

    async def test_set(self, db, registry):
        await _create(db, registry)
        async with db.get_session() as session:
            meta = await registry.change_password(session, "doc-1", SetPassword("new"))
        assert verify_password("new", meta.password_hash)

    def test_set_requires_value(self):
        with pytest.raises(ValueError):
            SetPassword("")


class TestStorage:
    def test_strips_storage_prefix(self, tmp_path):
        path = resolve_storage_path(tmp_path, "storage/doc-1.enc")
        assert path == (tmp_path / "doc-1.enc").resolve()

    def test_rejects_escape(self, tmp_path):
        with pytest.raises(ValueError):
            resolve_storage_path(tmp_path, "storage/../../etc/passwd")

    def test_write_then_read(self, tmp_path):
        stored = write_encrypted(tmp_path / "store", "doc-1.enc", b"blob")
        assert stored == "storage/doc-1.enc"
        assert read_encrypted(tmp_path / "store", stored) == b"blob"

    def test_read_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_encrypted(tmp_path, "storage/missing.enc")
