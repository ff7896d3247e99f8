"""Tests for write-once content storage."""
import pytest

from contentgate.core.storage import (
    ContentAlreadyExistsError,
    ContentKey,
    FileContentStore,
    InMemoryContentStore,
)
from contentgate.gate.models import ContentDraft


@pytest.fixture
def draft():
    return ContentDraft(title="重要事項説明の基本", body="本文です。", title_secondary="重要事项说明", hashtags=["宅建"])


class TestContentKey:
    """File naming."""

    def test_standard_filename(self):
        assert ContentKey("2026-03-02", "hatena").filename == "2026-03-02-hatena.json"

    def test_note_viral_filename(self):
        assert ContentKey("2026-03-02", "note", "note-viral").filename == "2026-03-02-note-viral.json"

    def test_variant_only_applies_to_note(self):
        assert ContentKey("2026-03-02", "ameba", "note-viral").filename == "2026-03-02-ameba.json"


class TestFileContentStore:
    """JSON files on disk."""

    def test_write_and_read(self, tmp_path, draft):
        store = FileContentStore(str(tmp_path / "content"))
        key = ContentKey("2026-03-02", "hatena")

        store.write(key, draft)

        payload = store.read(key)
        assert payload["title"] == "重要事項説明の基本"
        assert payload["hashtags"] == ["宅建"]
        assert store.exists(key) is True
        assert sorted(p.name for p in (tmp_path / "content").iterdir()) == ["2026-03-02-hatena.json"]

    def test_write_once(self, tmp_path, draft):
        """A second write of the same key is refused and the first file survives."""
        store = FileContentStore(str(tmp_path))
        key = ContentKey("2026-03-02", "note")
        store.write(key, draft)

        with pytest.raises(ContentAlreadyExistsError):
            store.write(key, ContentDraft(title="別のタイトル"))

        assert store.read(key)["title"] == "重要事項説明の基本"

    def test_variants_do_not_collide(self, tmp_path, draft):
        store = FileContentStore(str(tmp_path))
        store.write(ContentKey("2026-03-02", "note"), draft)
        store.write(ContentKey("2026-03-02", "note", "note-viral"), draft)

        assert store.exists(ContentKey("2026-03-02", "note", "note-viral"))

    def test_missing_key(self, tmp_path):
        assert FileContentStore(str(tmp_path)).read(ContentKey("2026-03-02", "ameba")) is None


class TestInMemoryContentStore:
    """Dictionary-backed store."""

    def test_write_once(self, draft):
        store = InMemoryContentStore()
        key = ContentKey("2026-03-02", "ameba")
        store.write(key, draft)

        with pytest.raises(ContentAlreadyExistsError):
            store.write(key, draft)

    def test_reads_are_copies(self, draft):
        store = InMemoryContentStore()
        key = ContentKey("2026-03-02", "ameba")
        store.write(key, draft)

        store.read(key)["title"] = "changed"

        assert store.read(key)["title"] == "重要事項説明の基本"
