import logging
import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import fcluster, linkage
from sklearn.cluster import KMeans
from sklearn.decomposition import PCA
from sklearn.manifold import TSNE
from sklearn.metrics import silhouette_score
from sklearn.preprocessing import StandardScaler
from tqdm import tqdm
from typing import Dict, Optional
from data_prep import HELPER_COLUMNS

"""
Dimensionality reduction and clustering of the imputed table:
- standardize(df): zero mean / unit variance on the measurement columns (helpers excluded).
- run_pca(X): scores, loadings and explained variance for every component.
- hierarchical_clusters(X, n_clusters): complete linkage on Euclidean distance, cut at n_clusters.
- kmeans_clusters(X, n_clusters) and silhouette_sweep(X, k_range): k-means with k chosen by silhouette.
- tsne_embedding(X): 2-D t-SNE for visual inspection.

K-means, t-SNE and every subsample take a seed and are reproducible with it.
"""

RANDOM_STATE = 42
N_HCLUST = 3
K_RANGE = range(2, 9)
SILHOUETTE_SAMPLE = 2000
TSNE_SAMPLE = 3000

logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def _subsample(X: pd.DataFrame, sample_size: Optional[int], random_state: int) -> pd.DataFrame:
    if sample_size is None or sample_size >= len(X):
        return X
    return X.sample(n=sample_size, random_state=random_state).sort_index()


def standardize(df: pd.DataFrame) -> pd.DataFrame:
    """Scale numeric, non-helper columns. Row labels are kept."""
    columns = [c for c in df.select_dtypes(include=[np.number]).columns if c not in HELPER_COLUMNS]
    assert not df[columns].isna().any().any(), 'Standardization needs a complete table'

    scaled = StandardScaler().fit_transform(df[columns])
    logger.info(f"Standardized {len(columns)} columns over {len(df)} rows")
    return pd.DataFrame(scaled, index=df.index, columns=columns)


def run_pca(X: pd.DataFrame) -> Dict:
    """
    Principal components of a standardized table.

    Returns:
        dict:
            - scores (DataFrame): rows x components.
            - loadings (DataFrame): variables x components.
            - explained_variance_ratio (Series): fraction of variance per component.
            - cumulative_variance (Series): running sum of the above.
    """
    pca = PCA()
    scores = pca.fit_transform(X)
    components = [f'PC{i + 1}' for i in range(pca.n_components_)]

    ratio = pd.Series(pca.explained_variance_ratio_, index=components)
    logger.info(f"PCA: first two components explain {ratio.iloc[:2].sum() * 100:.1f}% of the variance")
    return {
        'scores': pd.DataFrame(scores, index=X.index, columns=components),
        'loadings': pd.DataFrame(pca.components_.T, index=X.columns, columns=components),
        'explained_variance_ratio': ratio,
        'cumulative_variance': ratio.cumsum(),
        'model': pca
    }


def hierarchical_clusters(X: pd.DataFrame, n_clusters: int = N_HCLUST, sample_size: Optional[int] = None,
                          random_state: int = RANDOM_STATE) -> Dict:
    """Complete-linkage agglomerative clustering, cut into n_clusters. Labels start at 1."""
    data = _subsample(X, sample_size, random_state)
    logger.info(f"Hierarchical clustering (complete linkage) on {len(data)} rows...")

    Z = linkage(data.to_numpy(), method='complete', metric='euclidean')
    labels = fcluster(Z, t=n_clusters, criterion='maxclust')
    return {
        'labels': pd.Series(labels, index=data.index, name='hclust'),
        'linkage': Z
    }


def kmeans_clusters(X: pd.DataFrame, n_clusters: int, random_state: int = RANDOM_STATE) -> Dict:
    logger.info(f"Running KMeans with k={n_clusters}")
    km = KMeans(n_clusters=n_clusters, n_init=10, random_state=random_state)
    labels = km.fit_predict(X)
    return {
        'labels': pd.Series(labels, index=X.index, name='kmeans'),
        'centers': pd.DataFrame(km.cluster_centers_, columns=X.columns),
        'inertia': km.inertia_
    }


def silhouette_sweep(X: pd.DataFrame, k_range=K_RANGE, sample_size: Optional[int] = SILHOUETTE_SAMPLE,
                     random_state: int = RANDOM_STATE) -> pd.Series:
    """Silhouette score of k-means for every k in k_range, scored on a seeded subsample."""
    sample_size = None if sample_size is not None and sample_size >= len(X) else sample_size
    scores = {}
    for k in tqdm(k_range, desc="Silhouette sweep"):
        labels = KMeans(n_clusters=k, n_init=10, random_state=random_state).fit_predict(X)
        scores[k] = silhouette_score(X, labels, sample_size=sample_size, random_state=random_state)

    scores = pd.Series(scores, name='silhouette')
    scores.index.name = 'k'
    logger.info(f"Best silhouette score {scores.max():.3f} at k={scores.idxmax()}")
    return scores


def tsne_embedding(X: pd.DataFrame, sample_size: Optional[int] = TSNE_SAMPLE, perplexity: float = 30.0,
                   random_state: int = RANDOM_STATE, method: str = 'barnes_hut') -> pd.DataFrame:
    """2-D t-SNE of a seeded subsample. method='exact' avoids the threaded Barnes-Hut approximation."""
    data = _subsample(X, sample_size, random_state)
    # Perplexity must stay below the number of rows
    perplexity = min(perplexity, (len(data) - 1) / 3)
    logger.info(f"Running t-SNE on {len(data)} rows (perplexity={perplexity:.1f})...")

    tsne = TSNE(n_components=2, perplexity=perplexity, init='pca', method=method, random_state=random_state)
    embedding = tsne.fit_transform(data.to_numpy())
    return pd.DataFrame(embedding, index=data.index, columns=['tsne_1', 'tsne_2'])
