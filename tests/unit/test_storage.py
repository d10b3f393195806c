"""Unit tests for the local blob and JSON metadata stores."""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from speechpace.models.recording import RecordingMetadata, SpeedCategory
from speechpace.storage import JsonMetadataStore, LocalBlobStore


def make_metadata(recording_id="rec-1", name="Morning pitch"):
    return RecordingMetadata(
        id=recording_id,
        name=name,
        timestamp=datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc),
        duration=42.5,
        words_per_minute=163,
        speech_speed=SpeedCategory.FAST,
        transcript="We grew revenue again this quarter",
        storage_uri="file:///tmp/rec-1.wav",
    )


@pytest.mark.unit
class TestRecordingMetadata:

    def test_persisted_shape(self):
        data = make_metadata().to_dict()
        assert data == {
            "id": "rec-1",
            "name": "Morning pitch",
            "timestamp": "2024-03-01T09:30:00+00:00",
            "duration": 42.5,
            "wordsPerMinute": 163,
            "speechSpeed": "Fast",
            "transcript": "We grew revenue again this quarter",
            "storageUri": "file:///tmp/rec-1.wav",
        }

    def test_from_dict_accepts_epoch_timestamp(self):
        data = make_metadata().to_dict()
        data["timestamp"] = 1709285400
        restored = RecordingMetadata.from_dict(data)
        assert restored.timestamp == datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)

    def test_from_dict_naive_timestamp_is_utc(self):
        data = make_metadata().to_dict()
        data["timestamp"] = "2024-03-01T09:30:00"
        assert RecordingMetadata.from_dict(data).timestamp.tzinfo == timezone.utc

    def test_very_fast_value(self):
        data = make_metadata().to_dict()
        data["speechSpeed"] = "Very Fast"
        assert RecordingMetadata.from_dict(data).speech_speed is SpeedCategory.VERY_FAST

    def test_negative_duration_rejected(self):
        with pytest.raises(ValueError):
            RecordingMetadata("x", "x", datetime.now(timezone.utc), -1.0, 0,
                              SpeedCategory.SLOW, "", "file:///x")


@pytest.mark.unit
class TestJsonMetadataStore:

    def test_put_and_list(self, temp_data_dir):
        store = JsonMetadataStore(temp_data_dir)
        store.put("alice", make_metadata("a"))
        store.put("alice", make_metadata("b"))
        store.put("bob", make_metadata("c"))

        assert sorted(r.id for r in store.list_by_owner("alice")) == ["a", "b"]
        assert [r.id for r in store.list_by_owner("bob")] == ["c"]
        assert store.list_by_owner("carol") == []

    def test_file_layout(self, temp_data_dir):
        store = JsonMetadataStore(temp_data_dir)
        store.put("alice", make_metadata("a"))

        path = Path(temp_data_dir) / "alice" / "a.json"
        with open(path, 'r', encoding='utf-8') as f:
            assert json.load(f)["wordsPerMinute"] == 163
        assert not path.with_suffix(".json.tmp").exists()

    def test_put_overwrites(self, temp_data_dir):
        store = JsonMetadataStore(temp_data_dir)
        store.put("alice", make_metadata("a", name="first"))
        store.put("alice", make_metadata("a", name="second"))
        assert [r.name for r in store.list_by_owner("alice")] == ["second"]

    def test_delete(self, temp_data_dir):
        store = JsonMetadataStore(temp_data_dir)
        store.put("alice", make_metadata("a"))
        store.delete("alice", "a")
        assert store.list_by_owner("alice") == []

    def test_delete_missing_raises(self, temp_data_dir):
        store = JsonMetadataStore(temp_data_dir)
        with pytest.raises(FileNotFoundError):
            store.delete("alice", "missing")

    def test_corrupt_file_is_skipped(self, temp_data_dir):
        store = JsonMetadataStore(temp_data_dir)
        store.put("alice", make_metadata("a"))
        (Path(temp_data_dir) / "alice" / "broken.json").write_text("{not json")

        assert [r.id for r in store.list_by_owner("alice")] == ["a"]


@pytest.mark.unit
class TestLocalBlobStore:

    def test_upload_download_delete(self, temp_data_dir, sample_audio_file):
        store = LocalBlobStore(str(Path(temp_data_dir) / "blobs"))

        uri = store.upload(sample_audio_file, "recordings/alice/rec-1.wav")
        assert uri.startswith("file://")
        assert uri.endswith("recordings/alice/rec-1.wav")
        assert store.download(uri) == Path(sample_audio_file).read_bytes()

        store.delete(uri)
        with pytest.raises(FileNotFoundError):
            store.download(uri)

    def test_key_cannot_escape_root(self, temp_data_dir, sample_audio_file):
        store = LocalBlobStore(str(Path(temp_data_dir) / "blobs"))
        with pytest.raises(ValueError):
            store.upload(sample_audio_file, "../outside.wav")

    def test_rejects_foreign_uri(self, temp_data_dir):
        store = LocalBlobStore(temp_data_dir)
        with pytest.raises(ValueError):
            store.download("gs://bucket/rec.wav")
