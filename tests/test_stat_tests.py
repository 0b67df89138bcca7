import numpy as np
import pandas as pd
import pytest
from data_prep import add_derived_fields
from stat_tests import (correlation_matrix, ks_normality, pairwise_weekday_tests, summary_statistics,
                        weekday_vs_sunday_ttest)


@pytest.fixture
def hourly():
    """Eight weeks of hourly data, NO2 lower on Sundays."""
    rng = np.random.default_rng(1)
    stamps = pd.date_range('2004-03-01', periods=24 * 7 * 8, freq='h')
    df = pd.DataFrame({
        'date': stamps.normalize(),
        'day': stamps.day,
        'month': stamps.month,
        'year': stamps.year,
        'time': stamps.hour
    })
    sunday = stamps.dayofweek == 6
    df['no2'] = 100 + rng.normal(0, 5, len(df)) - 30 * sunday
    df['co'] = 2 + rng.normal(0, 0.3, len(df))
    return add_derived_fields(df)


def test_summary_statistics(hourly):
    hourly.loc[:9, 'co'] = np.nan
    summary = summary_statistics(hourly, ['no2', 'co'])
    assert summary.loc['co', 'missing'] == 10
    assert summary.loc['co', 'count'] == len(hourly) - 10
    assert 'mean' in summary.columns


def test_correlation_is_pairwise_complete():
    df = pd.DataFrame({
        'a': [1.0, 2.0, 3.0, 4.0, np.nan, np.nan],
        'b': [2.0, 4.0, 6.0, 8.0, 1.0, 5.0],
        'c': [np.nan, np.nan, 1.0, 0.0, 3.0, 1.0]
    })
    corr = correlation_matrix(df, ['a', 'b', 'c'])
    assert corr.loc['a', 'b'] == pytest.approx(1.0)
    # b/c uses rows 2-5, which listwise deletion would have reduced to rows 2-3
    assert corr.loc['b', 'c'] == pytest.approx(np.corrcoef([6.0, 8.0, 1.0, 5.0], [1.0, 0.0, 3.0, 1.0])[0, 1])


def test_weekday_vs_sunday_ttest(hourly):
    result = weekday_vs_sunday_ttest(hourly, ['no2', 'co'])
    assert result.loc['no2', 'n_weeks'] == 8
    assert result.loc['no2', 'mean_difference'] == pytest.approx(30, abs=2)
    assert result.loc['no2', 'p_value'] < 0.001
    assert result.loc['co', 'p_value'] > 0.001


def test_weekday_vs_sunday_ttest_without_sundays(hourly):
    no_sundays = hourly[hourly['weekday'] != 'Sunday']
    result = weekday_vs_sunday_ttest(no_sundays, ['no2'])
    assert result.loc['no2', 'n_weeks'] == 0
    assert np.isnan(result.loc['no2', 'p_value'])


def test_pairwise_weekday_tests(hourly):
    result = pairwise_weekday_tests(hourly, 'no2')
    assert len(result) == 21
    assert (result['p_adjusted'] >= result['p_value'] - 1e-12).all()
    sunday_pairs = result[(result['day_b'] == 'Sunday')]
    assert sunday_pairs['reject'].all()
    weekday_pairs = result[(result['day_a'] != 'Sunday') & (result['day_b'] != 'Sunday')]
    assert not weekday_pairs['reject'].all()


def test_ks_normality(hourly):
    result = ks_normality(hourly, ['co'], group='trimester')
    assert set(result['trimester']) == {1, 2}
    assert (result['p_value'] > 0.01).all()
    assert result['n'].sum() == len(hourly)


def test_ks_normality_detects_skew(hourly):
    rng = np.random.default_rng(2)
    hourly['skewed'] = rng.exponential(1.0, len(hourly))
    result = ks_normality(hourly, ['skewed'], group='trimester')
    assert (result['p_value'] < 0.01).all()
