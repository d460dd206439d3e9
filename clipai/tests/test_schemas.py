"""Tests for clip models and their JSON form."""

import json
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from clipai.models.schemas import Clip, ClipContentType, ClipMetadata, KnowledgeFile


class TestClipMetadata:
    def test_text_metadata_serializes_only_text_length(self):
        metadata = ClipMetadata.for_text(42)

        assert metadata.model_dump() == {"text_length": 42}
        assert metadata.is_text and not metadata.is_image

    def test_image_metadata_serializes_only_dimensions(self):
        metadata = ClipMetadata.for_image(1920, 1080)

        assert metadata.model_dump() == {"image_width": 1920, "image_height": 1080}
        assert metadata.is_image and not metadata.is_text

    def test_decodes_partial_object(self):
        metadata = ClipMetadata.model_validate({"text_length": 7})

        assert metadata.text_length == 7
        assert metadata.image_width is None
        assert metadata.image_height is None


class TestClip:
    def test_defaults(self):
        clip = Clip(content="hi", content_type=ClipContentType.TEXT)

        assert clip.id
        assert clip.source_app is None
        assert clip.source_url is None
        assert clip.metadata is None
        assert clip.timestamp.tzinfo is not None

    def test_ids_are_unique(self):
        ids = {Clip(content="x", content_type="text").id for _ in range(50)}
        assert len(ids) == 50

    def test_rejects_metadata_for_other_content_type(self):
        with pytest.raises(ValidationError):
            Clip(
                content="hi",
                content_type=ClipContentType.TEXT,
                metadata=ClipMetadata.for_image(1, 1),
            )
        with pytest.raises(ValidationError):
            Clip(
                content="",
                content_type=ClipContentType.IMAGE,
                metadata=ClipMetadata.for_text(0),
            )
        with pytest.raises(ValidationError):
            Clip(
                content="hi",
                content_type=ClipContentType.TEXT,
                metadata=ClipMetadata(text_length=2, image_width=3),
            )

    def test_clip_is_immutable(self):
        clip = Clip(content="hi", content_type=ClipContentType.TEXT)

        with pytest.raises(ValidationError):
            clip.content = "changed"

    def test_with_updated_timestamp_keeps_everything_else(self):
        clip = Clip(
            content="hi",
            content_type=ClipContentType.TEXT,
            source_app="Notes",
            source_url="https://example.com",
            metadata=ClipMetadata.for_text(2),
            timestamp=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )
        later = clip.timestamp + timedelta(hours=1)

        updated = clip.with_updated_timestamp(later)

        assert updated.timestamp == later
        assert updated.model_dump(exclude={"timestamp"}) == clip.model_dump(
            exclude={"timestamp"}
        )
        assert clip.timestamp == datetime(2025, 1, 1, tzinfo=timezone.utc)

    def test_naive_timestamps_are_utc(self):
        clip = Clip(
            content="hi",
            content_type=ClipContentType.TEXT,
            timestamp=datetime(2025, 1, 1, 12, 0),
        )

        assert clip.timestamp == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "clip",
        [
            Clip(
                content="Hello",
                content_type=ClipContentType.TEXT,
                source_app="Safari",
                source_url="https://example.com/path?q=1",
                metadata=ClipMetadata.for_text(5),
                timestamp=datetime(2025, 3, 4, 5, 6, 7, 891000, tzinfo=timezone.utc),
            ),
            Clip(
                content="iVBORw0KGgo=",
                content_type=ClipContentType.IMAGE,
                metadata=ClipMetadata.for_image(640, 480),
            ),
            Clip(content="bare", content_type=ClipContentType.TEXT),
        ],
    )
    def test_json_round_trip(self, clip):
        encoded = json.dumps(KnowledgeFile(clips=[clip]).model_dump(mode="json"))
        decoded = KnowledgeFile.model_validate_json(encoded)

        assert decoded.clips == [clip]

    def test_decodes_document_with_missing_optional_fields(self):
        raw = json.dumps(
            {
                "clips": [
                    {
                        "id": "5C3F0A4E-1B2C-4D5E-8F90-123456789ABC",
                        "content": "Hello",
                        "content_type": "text",
                        "timestamp": "2025-01-15T10:30:00Z",
                        "metadata": {"text_length": 5},
                    }
                ]
            }
        )

        [clip] = KnowledgeFile.model_validate_json(raw).clips

        assert clip.id == "5C3F0A4E-1B2C-4D5E-8F90-123456789ABC"
        assert clip.source_app is None
        assert clip.source_url is None
        assert clip.timestamp == datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_json_field_names(self):
        clip = Clip(
            content="x",
            content_type=ClipContentType.TEXT,
            metadata=ClipMetadata.for_text(1),
        )

        data = clip.model_dump(mode="json")

        assert set(data) == {
            "id",
            "content",
            "content_type",
            "source_app",
            "source_url",
            "timestamp",
            "metadata",
        }
        assert data["content_type"] == "text"
        assert data["metadata"] == {"text_length": 1}
        assert isinstance(data["timestamp"], str)
