import json

from meetsense.models import AudioCharacteristics, MeetingStatus, Priority, TaskPlatform
from meetsense.session_io import (
    load_profiles,
    load_snapshot,
    save_profiles,
    save_snapshot,
    snapshot_from_dict,
    snapshot_to_dict,
)
from meetsense.voice_profiles import VoiceProfileStore


def test_snapshot_survives_json(tmp_path, sample_snapshot):
    path = tmp_path / "meeting.session.json"
    save_snapshot(str(path), sample_snapshot)

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["status"] == "completed"
    assert raw["transcript"][0]["timestamp"].startswith("2026-03-02T10:00:00")

    loaded = load_snapshot(str(path))
    assert loaded == sample_snapshot
    assert loaded.status is MeetingStatus.COMPLETED
    assert loaded.action_items[0].priority is Priority.MEDIUM
    assert loaded.action_items[0].integrations[0].platform is TaskPlatform.JIRA
    assert loaded.transcript[1].sentiment is None
    assert loaded.metadata.custom_vocabulary == ("Postgres",)


def test_voice_profiles_survive_json(tmp_path):
    store = VoiceProfileStore(scope="global")
    speaker = store.identify_speaker(AudioCharacteristics(180.0, 0.5, 1.0))
    store.bind_identity(speaker, "Ada", "ada@example.com")

    path = tmp_path / "voice_profiles.json"
    save_profiles(str(path), store.profiles())
    profiles = load_profiles(str(path))

    assert [p.speaker_id for p in profiles] == ["speaker_1"]
    assert profiles[0].name == "Ada"
    assert profiles[0].characteristics.pitch == 180.0


def test_snapshot_dict_is_json_ready(sample_snapshot):
    data = snapshot_to_dict(sample_snapshot)
    assert data["platform"] == "teams"
    assert isinstance(data["start_time"], str)
    assert json.loads(json.dumps(data)) == data
    assert snapshot_from_dict(data) == sample_snapshot
