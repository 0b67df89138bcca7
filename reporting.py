import logging
import matplotlib.pyplot as plt
import numpy as np
import os
import pandas as pd
import seaborn as sns
from scipy.cluster.hierarchy import dendrogram
from tabulate import tabulate
from typing import Dict, List
from data_prep import MEASUREMENT_COLUMNS, REFERENCE_COLUMNS, WEEKDAYS

logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

UNITS = {
    'co': 'mg/m^3', 'nmhc': 'µg/m^3', 'c6h6': 'µg/m^3', 'nox': 'ppb', 'no2': 'µg/m^3',
    'temperature': '°C', 'relative_humidity': '%', 'absolute_humidity': 'g/m^3'
}


def dendrogram_cut_height(linkage_matrix: np.ndarray, n_clusters: int) -> float:
    """Height halfway between the merge leaving n_clusters groups and the one leaving n_clusters - 1."""
    assert 1 < n_clusters <= len(linkage_matrix) + 1, 'n_clusters must be between 2 and the number of rows'
    upper = linkage_matrix[-(n_clusters - 1), 2]
    lower = linkage_matrix[-n_clusters, 2] if n_clusters <= len(linkage_matrix) else 0.0
    return (upper + lower) / 2


class AnalysisReporter:
    """
    Plots and text report of the analysis.

    `action` controls what happens to every figure:
    - 'visualize': show it.
    - 'save': write it to output_dir as PNG.
    - 'both': show and save.
    - 'none': do not draw anything.
    """

    def __init__(self, output_dir: str = 'explorer', action: str = 'save'):
        if action not in ('visualize', 'save', 'both', 'none'):
            raise ValueError(f"Invalid action: {action}")
        self.output_dir = output_dir
        self.action = action
        self.saved: List[str] = []
        os.makedirs(output_dir, exist_ok=True)

    @property
    def enabled(self) -> bool:
        return self.action != 'none'

    def _finish(self, name: str) -> None:
        """(Private) Save and/or show the current figure, then close it."""
        plt.tight_layout()
        if self.action in ['save', 'both']:
            path = os.path.join(self.output_dir, f'{name}.png')
            plt.savefig(path)
            self.saved.append(path)
        if self.action in ['visualize', 'both']:
            plt.show()
        plt.close()

    # EXPLORATION
    def plot_histograms(self, df: pd.DataFrame, columns: List[str] = None, name: str = 'histograms') -> None:
        if not self.enabled:
            return
        columns = columns if columns is not None else MEASUREMENT_COLUMNS
        n_cols = 4
        n_rows = int(np.ceil(len(columns) / n_cols))
        fig, axes = plt.subplots(n_rows, n_cols, figsize=(16, 3.5 * n_rows), squeeze=False)
        for ax, col in zip(axes.flat, columns):
            sns.histplot(df[col].dropna(), bins=40, ax=ax)
            ax.set_title(col)
            ax.set_xlabel(UNITS.get(col, ''))
        for ax in list(axes.flat)[len(columns):]:
            ax.set_visible(False)
        self._finish(name)

    def plot_boxplots_by(self, df: pd.DataFrame, by: str = 'trimester', columns: List[str] = None) -> None:
        if not self.enabled:
            return
        columns = columns if columns is not None else REFERENCE_COLUMNS
        fig, axes = plt.subplots(1, len(columns), figsize=(4 * len(columns), 5), squeeze=False)
        for ax, col in zip(axes.flat, columns):
            sns.boxplot(data=df, x=by, y=col, ax=ax)
            ax.set_title(f'{col} by {by}')
        self._finish(f'boxplots_by_{by}')

    def plot_violins_by_weekday(self, df: pd.DataFrame, columns: List[str] = None) -> None:
        if not self.enabled:
            return
        columns = columns if columns is not None else REFERENCE_COLUMNS
        fig, axes = plt.subplots(len(columns), 1, figsize=(12, 3.5 * len(columns)), squeeze=False)
        for ax, col in zip(axes.flat, columns):
            sns.violinplot(data=df, x='weekday', y=col, order=WEEKDAYS, ax=ax, cut=0)
            ax.set_title(f'{col} by weekday')
            ax.set_xlabel('')
        self._finish('violins_by_weekday')

    def plot_correlation_heatmap(self, corr: pd.DataFrame, name: str = 'correlation_heatmap') -> None:
        if not self.enabled:
            return
        plt.figure(figsize=(11, 9))
        sns.heatmap(corr, annot=True, cmap='coolwarm', fmt='.2f', vmin=-1, vmax=1, square=True)
        plt.title('Correlation matrix (pairwise complete observations)')
        self._finish(name)

    def plot_time_series(self, df: pd.DataFrame, columns: List[str] = None) -> None:
        if not self.enabled:
            return
        columns = columns if columns is not None else REFERENCE_COLUMNS
        fig, axes = plt.subplots(len(columns), 1, figsize=(15, 2.5 * len(columns)), sharex=True, squeeze=False)
        for ax, col in zip(axes.flat, columns):
            ax.plot(df['numeric_time'], df[col], linewidth=0.5)
            ax.set_ylabel(col)
            ax.grid(True, linestyle='--', alpha=0.5)
        axes.flat[-1].set_xlabel('Days since first observation')
        self._finish('time_series')

    # MISSING VALUES AND IMPUTATION
    def plot_missing_pattern(self, df: pd.DataFrame, columns: List[str] = None) -> None:
        if not self.enabled:
            return
        columns = columns if columns is not None else MEASUREMENT_COLUMNS
        plt.figure(figsize=(12, 6))
        sns.heatmap(df[columns].isna().T.astype(int), cbar=False, cmap='Greys', xticklabels=False)
        plt.title('Missing values (black) per row')
        plt.xlabel('Row')
        self._finish('missing_pattern')

    def plot_observed_vs_imputed(self, imputed: pd.DataFrame, mask: pd.DataFrame, columns: List[str] = None,
                                 name: str = 'observed_vs_imputed') -> None:
        """Density of observed values against density of imputed values, per column."""
        if not self.enabled:
            return
        columns = [c for c in (columns if columns is not None else MEASUREMENT_COLUMNS) if mask[c].any()]
        if not columns:
            logger.info("Nothing imputed, skipping observed vs imputed plot")
            return
        n_cols = 4
        n_rows = int(np.ceil(len(columns) / n_cols))
        fig, axes = plt.subplots(n_rows, n_cols, figsize=(16, 3.5 * n_rows), squeeze=False)
        for ax, col in zip(axes.flat, columns):
            sns.kdeplot(imputed.loc[~mask[col], col], ax=ax, label='observed', color='blue')
            if mask[col].sum() > 1:
                sns.kdeplot(imputed.loc[mask[col], col], ax=ax, label='imputed', color='red')
            ax.set_title(col)
            ax.legend()
        for ax in list(axes.flat)[len(columns):]:
            ax.set_visible(False)
        self._finish(name)

    def plot_imputation_comparison(self, first: pd.DataFrame, second: pd.DataFrame, mask: pd.DataFrame,
                                   column: str, labels=('full', 'sensor-only')) -> None:
        """Imputed values of one column under two predictor sets."""
        if not self.enabled or not mask[column].any():
            return
        a = first.loc[mask[column], column]
        b = second.loc[mask[column], column]
        plt.figure(figsize=(6, 6))
        plt.scatter(a, b, s=5, alpha=0.4)
        lims = [min(a.min(), b.min()), max(a.max(), b.max())]
        plt.plot(lims, lims, 'k--', linewidth=1)
        plt.xlabel(f'{column} imputed ({labels[0]})')
        plt.ylabel(f'{column} imputed ({labels[1]})')
        plt.title(f'{column}: imputation sensitivity to predictors')
        self._finish(f'imputation_comparison_{column}')

    # DIMENSIONALITY REDUCTION AND CLUSTERING
    def plot_screeplot(self, pca_result: Dict) -> None:
        if not self.enabled:
            return
        ratio = pca_result['explained_variance_ratio']
        cumulative = pca_result['cumulative_variance']
        x = np.arange(1, len(ratio) + 1)
        plt.figure(figsize=(10, 5))
        plt.bar(x, ratio.values, alpha=0.7, label='Explained variance')
        plt.plot(x, cumulative.values, '-o', color='black', label='Cumulative')
        plt.xticks(x, ratio.index, rotation=45)
        plt.ylabel('Fraction of variance')
        plt.title('Screeplot')
        plt.legend()
        plt.grid(True, linestyle='--', alpha=0.5)
        self._finish('screeplot')

    def plot_biplot(self, pca_result: Dict, labels: pd.Series = None, max_points: int = 3000,
                    random_state: int = 42) -> None:
        """Scores on PC1/PC2 with variable loadings drawn as arrows."""
        if not self.enabled:
            return
        scores = pca_result['scores']
        loadings = pca_result['loadings']
        if len(scores) > max_points:
            scores = scores.sample(n=max_points, random_state=random_state)
        colors = labels.reindex(scores.index) if labels is not None else None

        plt.figure(figsize=(10, 8))
        plt.scatter(scores['PC1'], scores['PC2'], c=colors, s=5, alpha=0.4, cmap='tab10')
        scale = np.abs(scores[['PC1', 'PC2']]).max().min()
        for var, (x, y) in loadings[['PC1', 'PC2']].iterrows():
            plt.arrow(0, 0, x * scale, y * scale, color='red', alpha=0.8, head_width=0.05 * scale / 3)
            plt.text(x * scale * 1.1, y * scale * 1.1, var, color='darkred', fontsize=9)
        ratio = pca_result['explained_variance_ratio']
        plt.xlabel(f"PC1 ({ratio['PC1'] * 100:.1f}%)")
        plt.ylabel(f"PC2 ({ratio['PC2'] * 100:.1f}%)")
        plt.title('PCA biplot')
        plt.grid(True, linestyle='--', alpha=0.5)
        self._finish('biplot')

    def plot_dendrogram(self, linkage_matrix: np.ndarray, n_clusters: int) -> None:
        if not self.enabled:
            return
        plt.figure(figsize=(14, 6))
        dendrogram(linkage_matrix, truncate_mode='lastp', p=30, no_labels=True)
        if n_clusters > 1:
            cut = dendrogram_cut_height(linkage_matrix, n_clusters)
            plt.axhline(cut, color='red', linestyle='--', label=f'{n_clusters} clusters')
            plt.legend()
        plt.title('Hierarchical clustering (complete linkage)')
        plt.ylabel('Euclidean distance')
        self._finish('dendrogram')

    def plot_clusters(self, scores: pd.DataFrame, labels: pd.Series, name: str) -> None:
        """Cluster labels on the first two principal components."""
        if not self.enabled:
            return
        points = scores.loc[labels.index]
        plt.figure(figsize=(9, 7))
        sns.scatterplot(x=points['PC1'], y=points['PC2'], hue=labels.astype(str), s=8, alpha=0.6,
                        palette='tab10')
        plt.title(f'{name} clusters on PC1/PC2')
        self._finish(f'clusters_{name}')

    def plot_silhouette(self, scores: pd.Series) -> None:
        if not self.enabled:
            return
        plt.figure(figsize=(8, 5))
        plt.plot(scores.index, scores.values, '-o')
        plt.xlabel('k')
        plt.ylabel('Silhouette score')
        plt.title('K-means silhouette sweep')
        plt.grid(True, linestyle='--', alpha=0.5)
        self._finish('silhouette')

    def plot_tsne(self, embedding: pd.DataFrame, labels: pd.Series = None) -> None:
        if not self.enabled:
            return
        hue = labels.reindex(embedding.index).astype(str) if labels is not None else None
        plt.figure(figsize=(9, 7))
        sns.scatterplot(x=embedding['tsne_1'], y=embedding['tsne_2'], hue=hue, s=8, alpha=0.6, palette='tab10')
        plt.title('t-SNE embedding')
        self._finish('tsne')

    # TEXT REPORT
    def write_report(self, sections: Dict[str, pd.DataFrame], filename: str = 'analysis_results.txt') -> str:
        """Write every section as a tabulate table. Returns the path of the report."""
        path = os.path.join(self.output_dir, filename)
        with open(path, 'w', encoding='utf-8') as f:
            for title, table in sections.items():
                f.write(f"=== {title.upper()} ===\n\n")
                if isinstance(table, pd.Series):
                    table = table.to_frame()
                f.write(tabulate(table, headers='keys', tablefmt='fancy_grid', floatfmt='.4g'))
                f.write("\n\n")
        logger.info(f"Report written to {path}")
        return path
