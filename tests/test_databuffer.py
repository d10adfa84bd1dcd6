import numpy as np
import pytest

from pulsesift.databuffer import DataBuffer


def test_new_buffer_is_zeroed_with_shape():
    db = DataBuffer(5, 3, 0.001, [1000.0, 1100.0, 1200.0])
    assert db.buffer.shape == (5, 3)
    assert not db.buffer.any()
    assert db.counter == 0
    assert db.equalized is False
    np.testing.assert_array_equal(db.frequencies, [1000.0, 1100.0, 1200.0])


def test_frequency_count_must_match_channels():
    with pytest.raises(ValueError):
        DataBuffer(4, 3, 0.001, [1000.0, 1100.0])


def test_negative_size_rejected():
    with pytest.raises(ValueError):
        DataBuffer(-1, 2)
    db = DataBuffer(2, 2)
    with pytest.raises(ValueError):
        db.resize(2, -3)


def test_resize_keeps_leading_frequencies():
    db = DataBuffer(2, 3, 0.5, [10.0, 20.0, 30.0])
    db.buffer[:] = 7.0
    db.resize(4, 5)
    assert db.buffer.shape == (4, 5)
    assert not db.buffer.any()
    np.testing.assert_array_equal(db.frequencies[:3], [10.0, 20.0, 30.0])
    np.testing.assert_array_equal(db.frequencies[3:], [0.0, 0.0])
    db.resize(4, 2)
    np.testing.assert_array_equal(db.frequencies, [10.0, 20.0])


def test_mean_rms_of_constant_channels():
    db = DataBuffer(6, 2)
    db.buffer[:, 0] = 3.0
    db.buffer[:, 1] = -2.0
    mean, rms = db.mean_rms()
    np.testing.assert_allclose(mean, [3.0, -2.0])
    np.testing.assert_allclose(rms, [0.0, 0.0], atol=1e-12)


def test_mean_rms_matches_numpy_statistics():
    rng = np.random.default_rng(1)
    db = DataBuffer(200, 4)
    db.buffer[:] = rng.normal(5.0, 2.0, size=(200, 4))
    mean, rms = db.mean_rms()
    np.testing.assert_allclose(mean, db.buffer.mean(axis=0), rtol=1e-5)
    np.testing.assert_allclose(rms, db.buffer.std(axis=0), rtol=1e-4)


def test_mean_rms_empty_raises():
    with pytest.raises(ValueError):
        DataBuffer(0, 3).mean_rms()


def test_dump_text_round_trip(tmp_path):
    db = DataBuffer(3, 2)
    db.buffer[:] = [[1.5, -2.25], [0.0, 4.0], [8.125, 3.5]]
    path = tmp_path / "block.txt"
    db.dump_text(path)
    loaded = np.loadtxt(path)
    np.testing.assert_allclose(loaded, db.buffer)


def test_dump_binary_round_trip(tmp_path):
    db = DataBuffer(4, 3)
    db.buffer[:] = np.arange(12, dtype=np.float32).reshape(4, 3)
    path = tmp_path / "block.bin"
    db.dump_binary(path)
    raw = np.fromfile(path, dtype=np.float32)
    assert raw.size == 12
    np.testing.assert_array_equal(raw.reshape(4, 3), db.buffer)