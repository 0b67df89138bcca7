import numpy as np
import pandas as pd
import pytest
from data_prep import HELPER_COLUMNS, MEASUREMENT_COLUMNS
from imputation import StochasticRegressionImputer
from reduction import (hierarchical_clusters, kmeans_clusters, run_pca, silhouette_sweep, standardize,
                       tsne_embedding)


@pytest.fixture
def standardized(filtered):
    imputed = StochasticRegressionImputer(n_iter=2, random_state=0).fit_transform(filtered)
    return standardize(imputed)


def test_standardize_excludes_helpers(standardized):
    assert list(standardized.columns) == MEASUREMENT_COLUMNS
    assert not set(HELPER_COLUMNS) & set(standardized.columns)
    np.testing.assert_allclose(standardized.mean(), 0, atol=1e-9)
    np.testing.assert_allclose(standardized.std(ddof=0), 1, atol=1e-9)


def test_standardize_requires_complete_table(filtered):
    with pytest.raises(AssertionError):
        standardize(filtered)


def test_pca_variance_sums_to_one(standardized):
    result = run_pca(standardized)
    assert result['explained_variance_ratio'].sum() == pytest.approx(1.0)
    assert result['cumulative_variance'].iloc[-1] == pytest.approx(1.0)
    assert result['explained_variance_ratio'].is_monotonic_decreasing


def test_pca_scores_uncorrelated(standardized):
    result = run_pca(standardized)
    cov = np.cov(result['scores'].to_numpy(), rowvar=False)
    off_diagonal = cov - np.diag(np.diag(cov))
    np.testing.assert_allclose(off_diagonal, 0, atol=1e-8)


def test_pca_shapes(standardized):
    result = run_pca(standardized)
    n_vars = standardized.shape[1]
    assert result['scores'].shape == standardized.shape
    assert result['scores'].index.equals(standardized.index)
    assert result['loadings'].shape == (n_vars, n_vars)
    assert list(result['loadings'].index) == list(standardized.columns)


def test_hierarchical_clusters(standardized):
    result = hierarchical_clusters(standardized, n_clusters=3)
    labels = result['labels']
    assert labels.index.equals(standardized.index)
    assert set(labels.unique()) <= {1, 2, 3}
    assert result['linkage'].shape == (len(standardized) - 1, 4)
    again = hierarchical_clusters(standardized, n_clusters=3)
    pd.testing.assert_series_equal(labels, again['labels'])


def test_hierarchical_clusters_subsample(standardized):
    first = hierarchical_clusters(standardized, n_clusters=2, sample_size=100, random_state=3)
    second = hierarchical_clusters(standardized, n_clusters=2, sample_size=100, random_state=3)
    assert len(first['labels']) == 100
    pd.testing.assert_series_equal(first['labels'], second['labels'])


def test_kmeans_reproducible(standardized):
    first = kmeans_clusters(standardized, n_clusters=3, random_state=1)
    second = kmeans_clusters(standardized, n_clusters=3, random_state=1)
    pd.testing.assert_series_equal(first['labels'], second['labels'])
    assert first['centers'].shape == (3, standardized.shape[1])
    assert set(first['labels'].unique()) == {0, 1, 2}


def test_silhouette_sweep(standardized):
    scores = silhouette_sweep(standardized, k_range=range(2, 5), sample_size=300, random_state=0)
    assert list(scores.index) == [2, 3, 4]
    assert scores.between(-1, 1).all()


def test_tsne_reproducible(standardized):
    first = tsne_embedding(standardized, sample_size=120, random_state=5, method='exact')
    second = tsne_embedding(standardized, sample_size=120, random_state=5, method='exact')
    assert first.shape == (120, 2)
    assert list(first.columns) == ['tsne_1', 'tsne_2']
    pd.testing.assert_frame_equal(first, second)
