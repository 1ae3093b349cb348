"""Tests for content hashing."""

from oshirase.core.enums import Day, MediaStatus
from oshirase.core.hashing import HASH_FIELDS, hash_document, hash_fields_for
from oshirase.core.schema import AltTitlesEntry, Media, ScheduleEntry, User


class TestHashDocument:
    """Tests for hash_document."""

    def test_stable(self) -> None:
        media = Media(media_id=1, title="Gintama", status=MediaStatus.CURRENT)
        assert hash_document(media) == hash_document(media.model_copy())
        assert len(hash_document(media)) == 64

    def test_changes_with_content(self) -> None:
        media = Media(media_id=1, title="Gintama", progress=1)
        assert hash_document(media) != hash_document(media.model_copy(update={"progress": 2}))

    def test_enrichment_changes_hash(self) -> None:
        media = Media(media_id=1, title="Gintama")
        enriched = media.model_copy(
            update={"schedule": ScheduleEntry(title="gintama", day=Day.SATURDAY, time="00:00")}
        )
        assert hash_document(media) != hash_document(enriched)

    def test_kinds_do_not_collide(self) -> None:
        """Same field values under different record kinds hash differently."""
        assert hash_document({"id": 1}) != hash_document(User(id=1, name="x"))

    def test_dict_ignores_bookkeeping_fields(self) -> None:
        doc = {"media_id": 1, "title": "Gintama"}
        stamped = {**doc, "hash": "abc", "modified": "2024-01-01T00:00:00"}
        assert hash_document(doc) == hash_document(stamped)

    def test_alt_titles_order_matters(self) -> None:
        a = AltTitlesEntry(media_id=1, alt_titles=["a", "b"])
        b = AltTitlesEntry(media_id=1, alt_titles=["b", "a"])
        assert hash_document(a) != hash_document(b)


class TestHashFields:
    """Tests for the registered field lists."""

    def test_registered(self) -> None:
        assert hash_fields_for(User(id=1, name="x")) == ("id", "name")
        assert "media_id" in hash_fields_for(Media(media_id=1))

    def test_unregistered(self) -> None:
        assert hash_fields_for({"id": 1}) is None

    def test_every_field_list_covers_model(self) -> None:
        for model, fields in HASH_FIELDS.items():
            assert set(fields) <= set(model.model_fields)
