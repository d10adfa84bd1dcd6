import numpy as np
import pytest

from pulsesift.databuffer import DataBuffer
from pulsesift.preprocesslite import PreprocessLite


def _block(nsamples=256, nchans=16, seed=3):
    db = DataBuffer(nsamples, nchans, 0.001, np.arange(nchans, dtype=float) + 1000.0)
    rng = np.random.default_rng(seed)
    db.buffer[:] = rng.normal(5.0, 2.0, size=(nsamples, nchans))
    return db


def _prepared(db, **kwargs):
    p = PreprocessLite(**kwargs)
    p.prepare(db)
    return p


def test_rejects_bad_factors():
    with pytest.raises(ValueError):
        PreprocessLite(td=0)
    with pytest.raises(ValueError):
        PreprocessLite(fd=-1)


def test_prepare_geometry():
    db = _block(nsamples=64, nchans=8)
    p = _prepared(db, td=2, fd=2)
    assert (p.nsamples, p.nchans) == (32, 4)
    assert p.tsamp == pytest.approx(0.002)
    np.testing.assert_allclose(p.frequencies, [1000.5, 1002.5, 1004.5, 1006.5])
    assert p.closable is False


def test_run_normalises_channels():
    db = _block()
    p = _prepared(db, thresig=10.0)
    out = p.run(db)
    assert out is p
    assert out.equalized is True
    assert out.counter == 256
    assert db.isbusy is False and out.isbusy is True
    np.testing.assert_allclose(out.buffer.mean(axis=0), 0.0, atol=1e-4)
    np.testing.assert_allclose(out.buffer.std(axis=0), 1.0, rtol=1e-3)


def test_constant_channel_is_zapped():
    db = _block()
    db.buffer[:, 3] = 7.0
    p = _prepared(db, thresig=10.0)
    p.run(db)
    assert p.killrate == pytest.approx(1 / 16)
    np.testing.assert_array_equal(p.buffer[:, 3], 0.0)
    assert np.any(p.buffer[:, 2] != 0.0)


def test_constant_channel_filled_with_noise():
    db = _block()
    db.buffer[:, 5] = 1.0
    p = _prepared(db, thresig=10.0, filltype="rand")
    p.run(db)
    assert np.std(p.buffer[:, 5]) > 0.5
    assert np.all(np.isfinite(p.buffer))


def test_downsampling_matches_summed_full_resolution():
    db1 = _block(nsamples=128, nchans=8)
    db2 = _block(nsamples=128, nchans=8)
    full = _prepared(db1, thresig=10.0)
    full.run(db1)
    down = _prepared(db2, td=2, fd=2, thresig=10.0)
    down.run(db2)
    assert down.equalized is False
    expected = full.buffer.astype(np.float64).reshape(64, 2, 4, 2).sum(axis=(1, 3))
    np.testing.assert_allclose(down.buffer, expected, rtol=1e-4, atol=1e-4)


def test_too_few_samples():
    db = DataBuffer(1, 4, 0.001, [1.0, 2.0, 3.0, 4.0])
    p = _prepared(db)
    with pytest.raises(ValueError):
        p.run(db)