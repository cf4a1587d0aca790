import threading

import pytest

from meetsense.models import AudioCharacteristics
from meetsense.voice_profiles import GLOBAL_NAMESPACE, VoiceProfileStore


def test_first_voice_gets_new_profile_with_initial_confidence():
    store = VoiceProfileStore()
    speaker = store.identify_speaker(AudioCharacteristics(150.0, 0.7, 1.2), "s1")
    assert speaker == "speaker_1"
    profile = store.get_profile(speaker, "s1")
    assert profile.confidence == pytest.approx(0.8)


def test_identify_is_deterministic_and_does_not_duplicate():
    store = VoiceProfileStore()
    voice = AudioCharacteristics(150.0, 0.7, 1.2)
    first = store.identify_speaker(voice, "s1")
    again = store.identify_speaker(AudioCharacteristics(155.0, 0.65, 1.3), "s1")
    assert first == again
    assert len(store.profiles("s1")) == 1


def test_outside_radius_on_any_axis_is_a_new_speaker():
    store = VoiceProfileStore()
    base = store.identify_speaker(AudioCharacteristics(150.0, 0.7, 1.2), "s1")
    by_pitch = store.identify_speaker(AudioCharacteristics(175.0, 0.7, 1.2), "s1")
    by_tone = store.identify_speaker(AudioCharacteristics(150.0, 0.2, 1.2), "s1")
    assert len({base, by_pitch, by_tone}) == 3


def test_closest_profile_wins_when_several_match():
    store = VoiceProfileStore()
    low = store.identify_speaker(AudioCharacteristics(140.0, 0.7, 1.2), "s1")
    high = store.identify_speaker(AudioCharacteristics(170.0, 0.7, 1.2), "s1")
    assert low != high
    assert store.identify_speaker(AudioCharacteristics(158.0, 0.7, 1.2), "s1") == high
    assert store.identify_speaker(AudioCharacteristics(152.0, 0.7, 1.2), "s1") == low


def test_observe_drifts_profile_toward_measurement():
    store = VoiceProfileStore()
    speaker = store.observe(AudioCharacteristics(150.0, 0.7, 1.2), 1.0, "s1")
    store.observe(AudioCharacteristics(160.0, 0.7, 1.2), 1.0, "s1")
    profile = store.get_profile(speaker, "s1")
    assert 150.0 < profile.characteristics.pitch < 160.0
    assert profile.confidence > 0.8
    assert profile.observations == 2


def test_update_with_zero_confidence_is_ignored():
    store = VoiceProfileStore()
    speaker = store.identify_speaker(AudioCharacteristics(150.0, 0.7, 1.2), "s1")
    store.update_profile(speaker, AudioCharacteristics(165.0, 0.7, 1.2), 0.0, "s1")
    assert store.get_profile(speaker, "s1").characteristics.pitch == 150.0


def test_session_scope_isolates_namespaces():
    store = VoiceProfileStore(scope="session")
    voice = AudioCharacteristics(150.0, 0.7, 1.2)
    assert store.identify_speaker(voice, store.namespace_for("a")) == "speaker_1"
    assert store.identify_speaker(voice, store.namespace_for("b")) == "speaker_1"
    assert len(store.profiles("a")) == 1
    assert len(store.profiles("b")) == 1


def test_global_scope_shares_profiles():
    store = VoiceProfileStore(scope="global")
    assert store.namespace_for("a") == GLOBAL_NAMESPACE
    voice = AudioCharacteristics(150.0, 0.7, 1.2)
    store.identify_speaker(voice, store.namespace_for("a"))
    store.identify_speaker(voice, store.namespace_for("b"))
    assert len(store.profiles(GLOBAL_NAMESPACE)) == 1


def test_bind_identity():
    store = VoiceProfileStore()
    speaker = store.identify_speaker(AudioCharacteristics(150.0, 0.7, 1.2), "s1")
    assert store.bind_identity(speaker, "Ada", "ada@example.com", "s1")
    assert store.get_profile(speaker, "s1").name == "Ada"
    assert not store.bind_identity("speaker_9", "Nobody", "", "s1")


def test_returned_profiles_are_copies():
    store = VoiceProfileStore()
    speaker = store.identify_speaker(AudioCharacteristics(150.0, 0.7, 1.2), "s1")
    copy = store.get_profile(speaker, "s1")
    copy.name = "Changed"
    assert store.get_profile(speaker, "s1").name is None


def test_load_continues_numbering():
    source = VoiceProfileStore(scope="global")
    source.identify_speaker(AudioCharacteristics(150.0, 0.7, 1.2))
    source.identify_speaker(AudioCharacteristics(250.0, 0.7, 1.2))

    target = VoiceProfileStore(scope="global")
    assert target.load(source.profiles()) == 2
    assert target.identify_speaker(AudioCharacteristics(151.0, 0.7, 1.2)) == "speaker_1"
    assert target.identify_speaker(AudioCharacteristics(350.0, 0.7, 1.2)) == "speaker_3"


def test_unknown_scope_rejected():
    with pytest.raises(ValueError):
        VoiceProfileStore(scope="team")


def test_concurrent_observations_do_not_duplicate_profiles():
    store = VoiceProfileStore()
    voice = AudioCharacteristics(150.0, 0.7, 1.2)
    results = []

    def worker():
        for _ in range(50):
            results.append(store.observe(voice, 0.5, "s1"))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert set(results) == {"speaker_1"}
    assert store.get_profile("speaker_1", "s1").observations == 200


def test_equal_distance_goes_to_most_recently_updated():
    store = VoiceProfileStore()
    low = store.identify_speaker(AudioCharacteristics(140.0, 0.7, 1.2), "s1")
    high = store.identify_speaker(AudioCharacteristics(160.0, 0.7, 1.2), "s1")
    between = AudioCharacteristics(150.0, 0.7, 1.2)
    assert store.identify_speaker(between, "s1") == high

    store.update_profile(low, AudioCharacteristics(140.0, 0.7, 1.2), 1.0, "s1")
    assert store.identify_speaker(between, "s1") == low
