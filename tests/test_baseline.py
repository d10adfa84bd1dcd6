import numpy as np
import pytest

from pulsesift.baseline import BaseLine, running_median
from pulsesift.databuffer import DataBuffer


def _block(nsamples=256, nchans=8, tsamp=0.001, seed=0):
    rng = np.random.default_rng(seed)
    db = DataBuffer(nsamples, nchans, tsamp, np.linspace(1500.0, 1200.0, nchans))
    trend = np.sin(np.linspace(0, 3 * np.pi, nsamples)) * 5.0
    gains = np.linspace(0.5, 2.0, nchans)
    offsets = np.arange(nchans, dtype=float) * 3.0
    noise = rng.normal(size=(nsamples, nchans))
    db.buffer[:] = (trend[:, None] * gains + offsets + noise).astype(np.float32)
    return db


def _prepared(db, width=0.05):
    bl = BaseLine(width)
    bl.prepare(db)
    return bl


def test_running_median_constant():
    out = running_median(np.full(20, 4.5), 5)
    np.testing.assert_array_equal(out, np.full(20, 4.5))


def test_running_median_removes_spike():
    out = running_median([1.0, 1.0, 100.0, 1.0, 1.0], 3)
    assert out[2] == 1.0
    assert out.shape == (5,)


def test_running_median_rejects_small_window():
    with pytest.raises(ValueError):
        running_median([1.0, 2.0], 0)


def test_inactive_when_window_too_short():
    db = _block()
    before = db.buffer.copy()
    bl = _prepared(db, width=0.002)
    assert bl.filter(db) is db
    assert bl.run(db) is db
    assert bl.filter2(db) is db
    np.testing.assert_array_equal(db.buffer, before)
    assert db.equalized is False


def test_filter_normalises_channels():
    db = _block()
    bl = _prepared(db)
    out = bl.filter(db)
    assert out is db
    assert db.equalized is True
    assert db.isbusy is True
    assert bl.counter == db.nsamples
    data = db.buffer.astype(np.float64)
    np.testing.assert_allclose(data.mean(axis=0), 0.0, atol=1e-4)
    np.testing.assert_allclose(data.std(axis=0), 1.0, atol=1e-3)


def test_filter_removes_common_trend():
    db = _block()
    trend = np.sin(np.linspace(0, 3 * np.pi, db.nsamples))
    raw_corr = np.corrcoef(trend, db.buffer[:, 0])[0, 1]
    bl = _prepared(db)
    bl.filter(db)
    cleaned_corr = np.corrcoef(trend, db.buffer[:, 0])[0, 1]
    assert abs(raw_corr) > 0.5
    assert abs(cleaned_corr) < abs(raw_corr) / 3


def test_run_matches_filter_and_leaves_input():
    db1 = _block(seed=3)
    db2 = _block(seed=3)
    original = db1.buffer.copy()

    bl_run = _prepared(db1)
    out = bl_run.run(db1)
    assert out is bl_run
    assert bl_run.equalized is True
    assert bl_run.isbusy is True
    assert db1.isbusy is False
    np.testing.assert_array_equal(db1.buffer, original)

    bl_filter = _prepared(db2)
    bl_filter.filter(db2)
    np.testing.assert_allclose(bl_run.buffer, db2.buffer, atol=1e-5)


def test_constant_channel_becomes_zero():
    db = _block()
    db.buffer[:, 2] = 7.0
    bl = _prepared(db)
    bl.filter(db)
    np.testing.assert_allclose(db.buffer[:, 2], 0.0, atol=1e-4)


def test_filter2_normalises_channels():
    db = _block(seed=5)
    bl = _prepared(db)
    out = bl.filter2(db)
    assert out is db
    assert db.equalized is True
    data = db.buffer.astype(np.float64)
    np.testing.assert_allclose(data.mean(axis=0), 0.0, atol=1e-4)
    np.testing.assert_allclose(data.std(axis=0), 1.0, atol=1e-3)


def test_counter_accumulates():
    db = _block()
    bl = _prepared(db)
    bl.filter(_block(seed=1))
    bl.filter(_block(seed=2))
    assert bl.counter == 2 * db.nsamples