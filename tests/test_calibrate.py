import numpy as np
import pandas as pd
import pytest

from gas_calibration import calibrate, DriftCalibrator, MalformedInput, NoReferenceData
from gas_calibration.core.pipeline import OUTPUT_COLUMNS
from gas_calibration.core.segmentation import run_length_ids, segment_means
from gas_calibration.core.reference import find_standards, build_reference_matrices
from gas_calibration.core.interpolation import interpolate_references
from gas_calibration.core.correction import time_since_reference

ATM, FLUSH = -10.0, -99.0


def build_synthetic_stream(n_cycles=4, n_atm=20, standards=(400.0, 500.0),
                           slope=1.03, offset=-4.0, drift_per_s=0.01, noise=0.2, seed=0):
    """Alternating atmosphere / flush / standard blocks with linear instrument drift."""
    rng = np.random.default_rng(seed)
    flags = []

    def block(flag, n):
        flags.extend([flag] * n)

    for _ in range(n_cycles):
        for std in standards:
            block(FLUSH, 2)
            block(std, 5)
        block(FLUSH, 2)
        block(ATM, n_atm)
    for std in standards:
        block(FLUSH, 2)
        block(std, 5)

    flags = np.array(flags, dtype=float)
    time = np.arange(flags.size, dtype=float) * 10.0
    true = np.where(flags > 0, flags, 420.0 + 5.0 * np.sin(time / 300.0))
    m = slope + drift_per_s * 1e-3 * time
    raw = m * true + offset + rng.normal(0, noise, size=flags.size)
    return time, raw, flags, true


def test_output_columns_and_row_bound():
    time, raw, flags, _ = build_synthetic_stream()
    res = calibrate(time, raw, flags)
    assert list(res.columns) == OUTPUT_COLUMNS
    assert len(res) <= int((flags == ATM).sum())
    assert (res['n'] >= 1).all()
    assert res['time'].is_monotonic_increasing
    assert set(res['time']).issubset(set(time[flags == ATM]))


def test_synthetic_drift_is_removed():
    time, raw, flags, true = build_synthetic_stream(noise=0.0, drift_per_s=0.0)
    res = calibrate(time, raw, flags)
    assert len(res) == int((flags == ATM).sum())
    expected = pd.Series(true, index=time).loc[res['time'].to_numpy()].to_numpy()
    np.testing.assert_allclose(res['cal'].to_numpy(), expected, rtol=1e-9)
    np.testing.assert_allclose(res['m'], 1.03)
    np.testing.assert_allclose(res['b'], -4.0, atol=1e-8)
    np.testing.assert_allclose(res['r_sq'], 1.0)


def test_standard_window_without_bracketing_yields_no_rows():
    time = np.arange(10, dtype=float)
    flags = np.array([-10, -10, -99, -99, 500, 500, -99, -99, -10, -10], dtype=float)
    raw = np.array([400, 402, 435, 473, 499, 501, 468, 422, 405, 404], dtype=float)
    res = calibrate(time, raw, flags)
    # One reference block cannot bracket atmosphere rows on either side
    assert len(res) == 0
    assert list(res.columns) == OUTPUT_COLUMNS


def test_bracketed_single_standard_at_known_value_is_identity():
    time = np.arange(10, dtype=float)
    flags = np.array([500, 500, -99, -10, -10, -10, -10, -99, 500, 500], dtype=float)
    raw = np.array([499, 501, 460, 400, 402, 405, 404, 470, 500, 500], dtype=float)
    res = calibrate(time, raw, flags)

    np.testing.assert_array_equal(res['time'], [3, 4, 5, 6])
    np.testing.assert_allclose(res['m'], 1.0)
    np.testing.assert_allclose(res['b'], 0.0)
    np.testing.assert_array_equal(res['n'], [1, 1, 1, 1])
    np.testing.assert_allclose(res['cal'], res['raw'])
    assert res['r_sq'].isna().all()


def test_single_standard_scales_by_interpolated_reading():
    time = np.arange(6, dtype=float)
    flags = np.array([500, 500, -10, -10, 500, 500], dtype=float)
    raw = np.array([520, 520, 400, 410, 540, 540], dtype=float)
    res = calibrate(time, raw, flags)

    V = np.array([520 + 20 / 3, 520 + 40 / 3])
    np.testing.assert_allclose(res['m'], 500.0 / V)
    np.testing.assert_allclose(res['cal'], np.array([400.0, 410.0]) * V / 500.0)


def test_two_standards_use_ols():
    time = np.arange(11, dtype=float)
    flags = np.array([400, 400, 500, 500, -10, -10, -10, 400, 400, 500, 500], dtype=float)
    raw = np.where(flags > 0, 1.1 * flags + 5.0, 300.0)
    res = calibrate(time, raw, flags)

    assert len(res) == 3
    np.testing.assert_array_equal(res['n'], [2, 2, 2])
    np.testing.assert_allclose(res['m'], 1.1)
    np.testing.assert_allclose(res['b'], 5.0, atol=1e-8)
    np.testing.assert_allclose(res['cal'], (300.0 - 5.0) / 1.1)


def test_er_tol_removes_rows_with_poor_reference_fit():
    time = np.arange(15, dtype=float)
    flags = np.array([400, 400, 500, 500, 600, 600, -10, -10, -10,
                      400, 400, 500, 500, 600, 600], dtype=float)
    raw = np.array([400, 400, 500, 500, 630, 630, 450, 451, 452,
                    400, 400, 500, 500, 630, 630], dtype=float)

    assert len(calibrate(time, raw, flags)) == 3
    assert len(calibrate(time, raw, flags, er_tol=2.0)) == 3
    assert len(calibrate(time, raw, flags, er_tol=1.0)) == 0


def test_dt_tol_drops_stale_rows():
    time = np.arange(12, dtype=float)
    flags = np.array([500, 500] + [-10] * 8 + [500, 500], dtype=float)
    raw = np.full(12, 500.0)

    lengths = [len(calibrate(time, raw, flags, dt_tol=tol))
               for tol in (None, 8.0, 6.0, 4.0, 2.0, 0.5)]
    assert lengths == [8, 8, 6, 4, 2, 0]

    res = calibrate(time, raw, flags, dt_tol=4.0)
    np.testing.assert_array_equal(res['time'], [2, 3, 4, 5])


def test_datetime_axis_and_timedelta_tolerance():
    time = pd.date_range('2024-01-01', periods=12, freq='min')
    flags = np.array([500, 500] + [-10] * 8 + [500, 500], dtype=float)
    raw = np.full(12, 500.0)

    res = calibrate(time, raw, flags, dt_tol=pd.Timedelta(minutes=3))
    assert pd.api.types.is_datetime64_any_dtype(res['time'])
    assert list(res['time']) == list(time[2:5])


def test_flush_rows_never_calibrated():
    time, raw, flags, _ = build_synthetic_stream(n_cycles=2)
    res = calibrate(time, raw, flags)
    assert not set(res['time']) & set(time[flags == FLUSH])


def test_missing_raw_value_propagates():
    time = np.arange(6, dtype=float)
    flags = np.array([500, 500, -10, -10, 500, 500], dtype=float)
    raw = np.array([500, 500, np.nan, 410, 500, 500], dtype=float)
    res = calibrate(time, raw, flags)
    assert len(res) == 2
    assert np.isnan(res['cal'].iloc[0])
    assert res['cal'].iloc[1] == pytest.approx(410.0)


def test_sentinels_from_config():
    config = {'calibration': {'atmosphere_flag': 0, 'flush_flag': -1}}
    time = np.arange(6, dtype=float)
    flags = np.array([500, -1, 0, 0, -1, 500], dtype=float)
    raw = np.array([500, 1, 400, 401, 1, 500], dtype=float)
    res = calibrate(time, raw, flags, config=config)
    np.testing.assert_array_equal(res['time'], [2, 3])


def test_no_standards_is_fatal():
    with pytest.raises(NoReferenceData):
        calibrate([0, 1, 2], [1.0, 2.0, 3.0], [-10, -99, -10])
    with pytest.raises(NoReferenceData):
        calibrate([], [], [])


def test_malformed_inputs_rejected():
    with pytest.raises(MalformedInput):
        calibrate([0, 1, 2], [1.0, 2.0], [-10, 500, -10])
    with pytest.raises(MalformedInput):
        calibrate([0, 2, 1], [1.0, 2.0, 3.0], [-10, 500, -10])
    with pytest.raises(MalformedInput):
        calibrate([0, 1, 2], ['a', 'b', 'c'], [-10, 500, -10])
    with pytest.raises(MalformedInput):
        calibrate([0, 1], [[1.0, 2.0]], [-10, 500])
    with pytest.raises(MalformedInput):
        calibrate([0, np.nan, 2], [1.0, 2.0, 3.0], [-10, 500, -10])


def test_calibrator_frame_and_summary():
    time, raw, flags, _ = build_synthetic_stream(n_cycles=2, noise=0.0)
    frame = pd.DataFrame({'time': time, 'gasm': raw, 'gask': flags})
    config = {
        'calibration': {'atmosphere_flag': -10, 'flush_flag': -99, 'er_tol': None, 'dt_tol': None},
        'data': {'columns': {'time': 'time', 'raw': 'gasm', 'flag': 'gask'}},
    }
    calibrator = DriftCalibrator(config)
    res = calibrator.calibrate_frame(frame)
    assert len(res) == 40

    stats = calibrator.summary()
    assert stats['n_calibrated'] == 40
    assert stats['n_single_standard'] == 0
    assert stats['min_r_sq'] == pytest.approx(1.0)

    assert len(calibrator.calibrate_frame(frame, dt_tol=50.0)) < 40


def test_calibrator_rejects_unknown_tolerance_keyword():
    time, raw, flags, _ = build_synthetic_stream(n_cycles=1)
    calibrator = DriftCalibrator({'calibration': {}})
    with pytest.raises(TypeError):
        calibrator.calibrate(time, raw, flags, er_tl=5.0)


def test_null_sentinels_fall_back_to_defaults():
    config = {'calibration': {'atmosphere_flag': None, 'flush_flag': None}}
    time = np.arange(6, dtype=float)
    flags = np.array([500, -99, -10, -10, -99, 500], dtype=float)
    raw = np.array([500, 1, 400, 401, 1, 500], dtype=float)
    res = calibrate(time, raw, flags, config=config)
    np.testing.assert_array_equal(res['time'], [2, 3])

    with pytest.raises(ValueError):
        calibrate(time, raw, flags, config={'calibration': {'atmosphere_flag': 'air'}})


def _two_standard_refs(flags, raw, time):
    flags = np.asarray(flags, dtype=float)
    seg = segment_means(run_length_ids(flags), raw)
    refs = build_reference_matrices(flags, seg, find_standards(flags))
    return interpolate_references(refs, time, flags == ATM)


def test_staleness_counts_from_latest_standard_used():
    # 400 last measured at t=1, 500 at t=3; both bracket t4..t7
    time = np.arange(12, dtype=float)
    flags = np.array([400, 400, 500, 500, -10, -10, -10, -10, 400, 400, 500, 500], dtype=float)
    raw = np.where(flags > 0, flags, 450.0)

    refs = _two_standard_refs(flags, raw, time)
    elapsed = time_since_reference(refs, time)
    np.testing.assert_allclose(elapsed[4:8], [1.0, 2.0, 3.0, 4.0])

    res = calibrate(time, raw, flags, dt_tol=2.0)
    np.testing.assert_array_equal(res['time'], [4, 5])
    np.testing.assert_array_equal(res['n'], [2, 2])


def test_staleness_ignores_standards_that_do_not_bracket():
    # 500 is never measured again, so rows fit on 400 alone
    time = np.arange(8, dtype=float)
    flags = np.array([400, 400, 500, 500, -10, -10, 400, 400], dtype=float)
    raw = np.where(flags > 0, flags, 450.0)

    refs = _two_standard_refs(flags, raw, time)
    np.testing.assert_allclose(time_since_reference(refs, time)[4:6], [3.0, 4.0])

    res = calibrate(time, raw, flags, dt_tol=3.0)
    np.testing.assert_array_equal(res['time'], [4])
    np.testing.assert_array_equal(res['n'], [1])
