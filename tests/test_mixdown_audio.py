from pathlib import Path

import numpy as np
import pytest

from mixdown.audio import AudioFile, Track, file_type_for, master_length, to_stereo, volume_factors
from mixdown.errors import DecodeError, InvalidConfigError


def test_mono_is_duplicated_into_both_channels() -> None:
    frames = np.array([[0.1], [0.2], [0.3]], dtype=np.float32)
    stereo = to_stereo(frames)
    assert np.array_equal(stereo, np.array([0.1, 0.1, 0.2, 0.2, 0.3, 0.3], dtype=np.float32))


def test_flat_mono_input_is_accepted() -> None:
    stereo = to_stereo([0.5, -0.5])
    assert stereo.tolist() == [0.5, 0.5, -0.5, -0.5]


def test_wide_sources_keep_first_two_channels() -> None:
    frames = np.array([[0.1, 0.2, 0.9, 0.9], [0.3, 0.4, 0.9, 0.9]], dtype=np.float32)
    stereo = to_stereo(frames)
    assert np.allclose(stereo, [0.1, 0.2, 0.3, 0.4])


def test_zero_channel_block_is_a_decode_error() -> None:
    with pytest.raises(DecodeError):
        to_stereo(np.zeros((4, 0), dtype=np.float32))


def test_no_clamping_before_encode() -> None:
    stereo = to_stereo(np.array([[1.5, -2.0]], dtype=np.float32))
    assert stereo.tolist() == [1.5, -2.0]


def test_volume_factors_default_missing_entries_to_full() -> None:
    factors = volume_factors([50], 3)
    assert factors.dtype == np.float32
    assert np.allclose(factors, [0.5, 1.0, 1.0])


def test_volume_factors_ignore_extra_entries() -> None:
    assert np.allclose(volume_factors([10, 20, 30], 2), [0.1, 0.2])


def test_volume_factors_allow_boost() -> None:
    assert np.allclose(volume_factors([150], 1), [1.5])


def test_negative_volume_is_rejected() -> None:
    with pytest.raises(InvalidConfigError):
        volume_factors([-1], 1)


def test_track_samples_are_read_only() -> None:
    track = Track(samples=[0.1, 0.2])
    assert track.sample_count == 2
    with pytest.raises(ValueError):
        track.samples[0] = 1.0


def test_track_copies_caller_buffer() -> None:
    source = np.array([0.1, 0.2], dtype=np.float32)
    track = Track(samples=source)
    source[0] = 0.9
    assert track.samples[0] == pytest.approx(0.1)


def test_track_from_frames_records_rate() -> None:
    track = Track.from_frames(np.zeros((5, 1)), sample_rate=22_050)
    assert track.sample_count == 10
    assert track.source_sample_rate == 22_050


def test_master_length_is_longest_track() -> None:
    tracks = [Track(samples=np.zeros(4)), Track(samples=np.zeros(10)), Track(samples=[])]
    assert master_length(tracks) == 10
    assert master_length([]) == 0


@pytest.mark.parametrize(
    ("name", "expected"),
    [("a.wav", "wav"), ("b.MP3", "mpeg"), ("c.ogg", "ogg"), ("d.oga", "ogg")],
)
def test_file_type_for_extension(name: str, expected: str) -> None:
    assert file_type_for(name) == expected


def test_file_type_for_unknown_extension() -> None:
    with pytest.raises(InvalidConfigError):
        file_type_for("notes.txt")


def test_audio_file_roundtrips_through_disk(tmp_path: Path) -> None:
    source = tmp_path / "in.wav"
    source.write_bytes(b"RIFF....")
    loaded = AudioFile.from_path(source)
    assert loaded.type == "wav"
    target = loaded.save(tmp_path / "out.wav")
    assert target.read_bytes() == b"RIFF...."
