"""Unit tests for character alignment handling."""

from thereader.core.speech.alignment import (
    alignment_payload,
    dump_alignment,
    from_parallel_arrays,
    load_alignment,
)


def test_parallel_arrays_zipped():
    """Test provider arrays become per-character timings."""
    alignment = from_parallel_arrays(["H", "i"], [0.0, 0.1], [0.1, 0.25])

    assert alignment is not None
    assert [t.character for t in alignment] == ["H", "i"]
    assert alignment[1].start_time_s == 0.1
    assert alignment[1].end_time_s == 0.25


def test_mismatched_arrays_rejected():
    """Test arrays of different lengths yield no alignment."""
    assert from_parallel_arrays(["H", "i"], [0.0], [0.1, 0.2]) is None


def test_missing_array_rejected():
    """Test a missing array yields no alignment."""
    assert from_parallel_arrays(["H"], None, [0.1]) is None


def test_stored_alignment_reloads():
    """Test serialized timings load back unchanged."""
    alignment = from_parallel_arrays(["a", "b"], [0, 0.5], [0.5, 1.0])

    assert load_alignment(dump_alignment(alignment)) == alignment


def test_invalid_stored_alignment_ignored():
    """Test a corrupt blob loads as None instead of failing."""
    assert load_alignment(b'{"not": "a list"}') is None
    assert load_alignment(b"not json") is None


def test_payload_shape():
    """Test the API representation of timings."""
    alignment = from_parallel_arrays(["a"], [0], [0.2])

    assert alignment_payload(alignment) == [
        {"character": "a", "start_time_s": 0.0, "end_time_s": 0.2}
    ]
    assert alignment_payload(None) is None
