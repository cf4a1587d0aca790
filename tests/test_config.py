import os
import tempfile

import pytest

from meetsense.config import Config, load_config, save_config


def test_save_and_load_config_roundtrip():
    cfg = Config(base_dir="/srv/meetings")
    cfg.transcription.recognizer = "mock"
    cfg.voice_profiles.scope = "global"
    cfg.analysis.max_topics = 3

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "meetsense_config.yml")
        save_config(path, cfg)
        loaded = load_config(path)

    assert loaded.base_dir == "/srv/meetings"
    assert loaded.transcription.recognizer == "mock"
    assert loaded.voice_profiles.scope == "global"
    assert loaded.analysis.max_topics == 3
    assert loaded.diarization.frame_ms == 30


def test_partial_config_uses_defaults(tmp_path):
    path = tmp_path / "partial.yml"
    path.write_text("log_level: debug\nsessions:\n  chunk_ms: 2000\n", encoding="utf-8")
    loaded = load_config(str(path))
    assert loaded.log_level == "DEBUG"
    assert loaded.sessions.chunk_ms == 2000
    assert loaded.transcription.whisper_model == "small"
    assert loaded.voice_profiles.pitch_radius == 20.0


def test_invalid_scope_rejected(tmp_path):
    path = tmp_path / "bad.yml"
    path.write_text("voice_profiles:\n  scope: team\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(path))
