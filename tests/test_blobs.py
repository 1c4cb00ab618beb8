"""Tests for blob metadata records and BlobService."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from pubfs.fs.blobs import (
    BLOB_ID_ALPHABET,
    BLOB_ID_LENGTH,
    BlobMetadataRecord,
    BlobService,
    generate_blob_id,
    is_blob_metadata,
    parse_blob_metadata,
)
from pubfs.fs.exceptions import BlobMetadataError, ErrorKind

if TYPE_CHECKING:
    from pubfs.fs.filesystem import FileSystem
    from pubfs.stores.memory import MemoryObjectStore

OWNER = "owner"
BASE = "/pub/app"
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _record(**overrides: object) -> dict[str, object]:
    raw: dict[str, object] = {
        "name": "photo.png",
        "created_at": 1_700_000_000_000_000,
        "src": "pubky://owner/pub/app/blobs/ABC",
        "content_type": "image/png",
        "size": 40,
    }
    raw.update(overrides)
    return raw


@pytest.fixture
def blobs(fs: FileSystem) -> BlobService:
    return BlobService(fs)


# =========================================================================
# Record parsing
# =========================================================================


class TestParseBlobMetadata:
    def test_valid(self) -> None:
        record = parse_blob_metadata(json.dumps(_record()))
        assert record is not None
        assert record.name == "photo.png"
        assert record.src == "pubky://owner/pub/app/blobs/ABC"
        assert record.size == 40

    def test_accepts_bytes(self) -> None:
        assert parse_blob_metadata(json.dumps(_record()).encode()) is not None

    def test_float_numbers(self) -> None:
        assert parse_blob_metadata(json.dumps(_record(size=40.0, created_at=1.5))) is not None

    @pytest.mark.parametrize(
        "content",
        [
            pytest.param(None, id="none"),
            pytest.param("", id="empty"),
            pytest.param("not json", id="not-json"),
            pytest.param("[1, 2]", id="array"),
            pytest.param(b"\xff\xfe", id="not-utf8"),
            pytest.param(json.dumps(_record(src="https://x/y")), id="foreign-src"),
            pytest.param(json.dumps(_record(size="40")), id="string-size"),
            pytest.param(json.dumps(_record(size=True)), id="bool-size"),
            pytest.param(json.dumps(_record(name=None)), id="null-name"),
            pytest.param(
                json.dumps({k: v for k, v in _record().items() if k != "content_type"}),
                id="missing-field",
            ),
        ],
    )
    def test_rejects(self, content: str | bytes | None) -> None:
        assert parse_blob_metadata(content) is None
        assert not is_blob_metadata(content)

    def test_custom_scheme(self) -> None:
        content = json.dumps(_record(src="hs://owner/pub/app/blobs/ABC"))
        assert parse_blob_metadata(content) is None
        assert parse_blob_metadata(content, scheme="hs") is not None

    def test_from_json_raises(self) -> None:
        with pytest.raises(BlobMetadataError, match="src"):
            BlobMetadataRecord.from_json(json.dumps(_record(src="file:///x")))

    def test_to_json_round_trip(self) -> None:
        record = BlobMetadataRecord(**_record())  # type: ignore[arg-type]
        text = record.to_json()
        assert "\n  " in text
        assert parse_blob_metadata(text) == record

    def test_extra_fields_preserved(self) -> None:
        record = BlobMetadataRecord.from_json(json.dumps(_record(alt="a cat", width=640)))
        assert record.extra == {"alt": "a cat", "width": 640}
        assert record == BlobMetadataRecord(**_record())  # type: ignore[arg-type]
        assert json.loads(record.to_json()) == _record(alt="a cat", width=640)

    def test_created_is_utc_datetime(self) -> None:
        record = BlobMetadataRecord(**_record())  # type: ignore[arg-type]
        assert record.created.year == 2023
        assert record.created.tzinfo is not None


class TestGenerateBlobId:
    def test_length_and_alphabet(self) -> None:
        blob_id = generate_blob_id()
        assert len(blob_id) == BLOB_ID_LENGTH
        assert set(blob_id) <= set(BLOB_ID_ALPHABET)

    def test_unique(self) -> None:
        assert len({generate_blob_id() for _ in range(200)}) == 200


# =========================================================================
# Keys
# =========================================================================


class TestBlobKeys:
    def test_blob_and_metadata_keys(self, blobs: BlobService) -> None:
        assert blobs.blob_key(BASE, OWNER, "X") == "pubky://owner/pub/app/blobs/X"
        assert blobs.metadata_key(BASE + "/", OWNER, "Y") == "pubky://owner/pub/app/files/Y"

    def test_base_path_of(self, blobs: BlobService) -> None:
        assert blobs.base_path_of("pubky://owner/pub/app/files/Y", OWNER) == "/pub/app"

    @pytest.mark.parametrize(
        "key",
        [
            pytest.param("pubky://other/pub/app/files/Y", id="other-owner"),
            pytest.param("pubky://owner/pub/app/blobs/Y", id="not-files"),
            pytest.param("pubky://owner/pub/app/files/", id="no-id"),
        ],
    )
    def test_base_path_of_rejects(self, blobs: BlobService, key: str) -> None:
        assert blobs.base_path_of(key, OWNER) is None


# =========================================================================
# Upload
# =========================================================================


class TestUploadBinary:
    async def test_record_points_at_blob(self, blobs: BlobService, fs: FileSystem) -> None:
        result = await blobs.upload_binary(PNG, BASE, OWNER, name="photo.png")
        assert result.success
        assert result.blob_key is not None
        assert result.metadata_key is not None
        assert result.blob_key.startswith("pubky://owner/pub/app/blobs/")
        assert result.metadata_key.startswith("pubky://owner/pub/app/files/")

        read = await fs.read_file(result.metadata_key, use_cache=False)
        record = blobs.parse(read.content)
        assert record is not None
        assert record.src == result.blob_key
        assert record.size == len(PNG)
        assert record.content_type == "image/png"

        raw = await fs.read_binary_file(result.blob_key)
        assert raw.data == PNG

    async def test_content_type_sniffed_without_extension(self, blobs: BlobService) -> None:
        result = await blobs.upload_binary(b"%PDF-1.4 body", BASE, OWNER)
        assert result.record is not None
        assert result.record.content_type == "application/pdf"
        assert result.record.name == result.blob_key.rsplit("/", 1)[-1]  # type: ignore[union-attr]

    async def test_explicit_content_type(self, blobs: BlobService) -> None:
        result = await blobs.upload_binary(b"x", BASE, OWNER, name="a.bin", content_type="text/x-custom")
        assert result.record is not None
        assert result.record.content_type == "text/x-custom"

    async def test_metadata_failure_is_partial(
        self, blobs: BlobService, store: MemoryObjectStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        original = store.put

        async def reject_records(key: str, data: bytes) -> bool:
            if "/files/" in key:
                return False
            return await original(key, data)

        monkeypatch.setattr(store, "put", reject_records)
        result = await blobs.upload_binary(PNG, BASE, OWNER)
        assert not result.success
        assert result.error is ErrorKind.PARTIAL_FAILURE
        assert result.blob_key in store

    async def test_blob_failure(
        self, blobs: BlobService, store: MemoryObjectStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def reject(key: str, data: bytes) -> bool:
            return False

        monkeypatch.setattr(store, "put", reject)
        result = await blobs.upload_binary(PNG, BASE, OWNER)
        assert not result.success
        assert result.error is ErrorKind.NETWORK_FAILURE
        assert result.blob_key is None


# =========================================================================
# Replace
# =========================================================================


class TestReplaceBinary:
    async def test_replace_updates_record_and_removes_old_blob(
        self, blobs: BlobService, store: MemoryObjectStore
    ) -> None:
        uploaded = await blobs.upload_binary(PNG, BASE, OWNER, name="photo.png")
        assert uploaded.metadata_key is not None

        replaced = await blobs.replace_binary(b"GIF89a-new", uploaded.metadata_key, OWNER, name="photo.gif")
        assert replaced.success
        assert replaced.old_blob_deleted
        assert replaced.blob_key != uploaded.blob_key
        assert uploaded.blob_key not in store
        assert replaced.blob_key in store

        record = parse_blob_metadata(store._objects[uploaded.metadata_key])
        assert record is not None
        assert record.src == replaced.blob_key
        assert record.name == "photo.gif"
        assert record.content_type == "image/gif"
        assert record.size == len(b"GIF89a-new")

    async def test_keeps_name_when_not_given(self, blobs: BlobService) -> None:
        uploaded = await blobs.upload_binary(PNG, BASE, OWNER, name="photo.png")
        assert uploaded.metadata_key is not None
        replaced = await blobs.replace_binary(PNG, uploaded.metadata_key, OWNER)
        assert replaced.record is not None
        assert replaced.record.name == "photo.png"

    async def test_replace_keeps_extra_fields(
        self, blobs: BlobService, fs: FileSystem, store: MemoryObjectStore
    ) -> None:
        uploaded = await blobs.upload_binary(PNG, BASE, OWNER, name="photo.png")
        assert uploaded.metadata_key is not None
        stored = json.loads(store._objects[uploaded.metadata_key])
        stored.update(alt="a cat", tags=["pets"])
        await fs.update_file(uploaded.metadata_key, json.dumps(stored))

        replaced = await blobs.replace_binary(b"GIF89a-new", uploaded.metadata_key, OWNER)
        assert replaced.success

        rewritten = json.loads(store._objects[uploaded.metadata_key])
        assert rewritten["alt"] == "a cat"
        assert rewritten["tags"] == ["pets"]
        assert rewritten["src"] == replaced.blob_key
        assert rewritten["size"] == len(b"GIF89a-new")

    async def test_old_blob_delete_failure_is_tolerated(
        self, blobs: BlobService, store: MemoryObjectStore
    ) -> None:
        uploaded = await blobs.upload_binary(PNG, BASE, OWNER)
        assert uploaded.metadata_key is not None and uploaded.blob_key is not None
        del store._objects[uploaded.blob_key]

        replaced = await blobs.replace_binary(PNG, uploaded.metadata_key, OWNER)
        assert replaced.success
        assert not replaced.old_blob_deleted

    async def test_missing_record(self, blobs: BlobService) -> None:
        result = await blobs.replace_binary(PNG, "pubky://owner/pub/app/files/NOPE", OWNER)
        assert not result.success
        assert result.error is ErrorKind.NOT_FOUND

    async def test_not_a_record(self, blobs: BlobService, fs: FileSystem) -> None:
        await fs.create_file("pubky://owner/pub/app/files/plain", "hello")
        result = await blobs.replace_binary(PNG, "pubky://owner/pub/app/files/plain", OWNER)
        assert not result.success
        assert result.error is ErrorKind.VALIDATION

    async def test_record_outside_files_dir(self, blobs: BlobService, fs: FileSystem) -> None:
        key = "pubky://owner/pub/app/other/rec"
        await fs.create_file(key, json.dumps(_record()))
        result = await blobs.replace_binary(PNG, key, OWNER)
        assert not result.success
        assert result.error is ErrorKind.VALIDATION


# =========================================================================
# Load
# =========================================================================


class TestLoad:
    async def test_via_metadata(self, blobs: BlobService) -> None:
        uploaded = await blobs.upload_binary(PNG, BASE, OWNER, name="photo.png")
        assert uploaded.metadata_key is not None
        loaded = await blobs.load(uploaded.metadata_key)
        assert loaded.success
        assert loaded.via_metadata
        assert loaded.data == PNG
        assert loaded.record == uploaded.record

    async def test_direct_blob(self, blobs: BlobService, fs: FileSystem) -> None:
        await fs.create_binary_file("pubky://owner/pub/app/raw", PNG)
        loaded = await blobs.load("pubky://owner/pub/app/raw")
        assert loaded.success
        assert not loaded.via_metadata
        assert loaded.record is not None
        assert loaded.record.content_type == "image/png"
        assert loaded.record.src == "pubky://owner/pub/app/raw"

    async def test_dangling_record(self, blobs: BlobService, store: MemoryObjectStore) -> None:
        uploaded = await blobs.upload_binary(PNG, BASE, OWNER)
        assert uploaded.metadata_key is not None and uploaded.blob_key is not None
        del store._objects[uploaded.blob_key]
        loaded = await blobs.load(uploaded.metadata_key)
        assert not loaded.success
        assert loaded.via_metadata
        assert loaded.error is ErrorKind.NOT_FOUND

    async def test_missing(self, blobs: BlobService) -> None:
        loaded = await blobs.load("pubky://owner/pub/app/none")
        assert not loaded.success
        assert loaded.error is ErrorKind.NOT_FOUND

    async def test_empty_file(self, blobs: BlobService, fs: FileSystem) -> None:
        await fs.create_file("pubky://owner/pub/app/empty", "")
        loaded = await blobs.load("pubky://owner/pub/app/empty")
        assert not loaded.success
        assert loaded.error is ErrorKind.VALIDATION


# =========================================================================
# Orphans
# =========================================================================


class TestCollectOrphans:
    async def test_finds_unreferenced_blobs(self, blobs: BlobService, fs: FileSystem) -> None:
        kept = await blobs.upload_binary(PNG, BASE, OWNER)
        orphan = "pubky://owner/pub/app/blobs/ORPHAN"
        await fs.create_binary_file(orphan, b"lost")

        result = await blobs.collect_orphans(BASE, OWNER)
        assert result.success
        assert result.orphaned == [orphan]
        assert result.deleted == []
        assert kept.blob_key not in result.orphaned

    async def test_delete(self, blobs: BlobService, fs: FileSystem, store: MemoryObjectStore) -> None:
        orphan = "pubky://owner/pub/app/blobs/ORPHAN"
        await fs.create_binary_file(orphan, b"lost")
        result = await blobs.collect_orphans(BASE, OWNER, delete=True)
        assert result.deleted == [orphan]
        assert orphan not in store

    async def test_empty_base(self, blobs: BlobService) -> None:
        result = await blobs.collect_orphans(BASE, OWNER)
        assert result.success
        assert result.orphaned == []
