"""
End-to-end analysis of the air quality dataset, in the order the steps depend on each other:

Step 1. Load and clean:
- Decimal commas, -200 sentinels, date/hour decomposition, derived trimester/weekday/numeric_time.

Step 2. Explore (read-only):
- Summary statistics, histograms, boxplots by trimester, violins by weekday, pairwise-complete correlations.

Step 3. Missing values:
- Counts, patterns and PT08 detector cross-tabulation.
- Drop rows where the PT08 detector is offline and the core reference columns are missing.

Step 4. Impute:
- Stochastic regression imputation with the full predictor set, then with the sensor-only set.
- Compare both runs and flag negative imputed concentrations.

Step 5. Reduce and cluster the completed table:
- PCA, complete-linkage hierarchical clustering, k-means (k by silhouette unless given), t-SNE.

Step 6. Hypothesis tests:
- Working days against Sundays (paired), pairwise weekday tests, KS normality per trimester.
"""

import logging
import pandas as pd
from typing import Dict, List, Optional
from data_prep import CORE_REFERENCE_COLUMNS, N_ROWS, REFERENCE_COLUMNS, MissingnessAnalyzer, load_and_clean
from imputation import FULL_PREDICTORS, N_ITER, RANDOM_STATE, SENSOR_PREDICTORS, StochasticRegressionImputer, \
    compare_imputations, flag_negative_values
from reduction import K_RANGE, N_HCLUST, TSNE_SAMPLE, hierarchical_clusters, kmeans_clusters, run_pca, \
    silhouette_sweep, standardize, tsne_embedding
from reporting import AnalysisReporter
from stat_tests import correlation_matrix, ks_normality, pairwise_weekday_tests, summary_statistics, \
    weekday_vs_sunday_ttest

# Configure logging
logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def run_analysis(data_path: str, output_dir: str = 'explorer', action: str = 'save',
                 n_rows: Optional[int] = N_ROWS, core_columns: List[str] = None, rule: str = 'any',
                 n_iter: int = N_ITER, seed: int = RANDOM_STATE, n_clusters: int = N_HCLUST, k: int = 0,
                 hclust_sample: Optional[int] = None, tsne_sample: Optional[int] = TSNE_SAMPLE) -> Dict:
    """
    Run the whole analysis once.

    Parameters:
        data_path (str): Semicolon-delimited input file.
        output_dir (str): Where figures and the text report go.
        action (str): 'visualize', 'save', 'both' or 'none' (see AnalysisReporter).
        n_rows (int): Rows kept from the file, None for all.
        core_columns (list): Reference columns of the row removal policy.
        rule (str): 'any' or 'all' over core_columns.
        n_iter (int): Imputation sweeps.
        seed (int): Seed for imputation, k-means, t-SNE and subsamples.
        n_clusters (int): Cut of the hierarchical tree.
        k (int): k-means cluster count, 0 to pick it by silhouette.
        hclust_sample (int): Rows used for hierarchical clustering, None for all.
        tsne_sample (int): Rows used for t-SNE, None for all.

    Returns:
        dict: Every intermediate table and result, keyed by step.
    """
    reporter = AnalysisReporter(output_dir=output_dir, action=action)
    core_columns = core_columns if core_columns is not None else CORE_REFERENCE_COLUMNS

    # Step 1
    data = load_and_clean(data_path, n_rows=n_rows)

    # Step 2
    logger.info("Exploring cleaned data...")
    summary = summary_statistics(data)
    corr = correlation_matrix(data)
    reporter.plot_histograms(data)
    reporter.plot_boxplots_by(data, by='trimester')
    reporter.plot_violins_by_weekday(data)
    reporter.plot_time_series(data)
    reporter.plot_correlation_heatmap(corr)

    # Step 3
    analyzer = MissingnessAnalyzer(data)
    missing_stats = analyzer.analyze()
    reporter.plot_missing_pattern(data)
    filtered = analyzer.drop_unrecoverable(core_columns=core_columns, rule=rule)
    logger.info(f"Rows: {len(data)} -> {len(filtered)} after removing unrecoverable rows")

    # Step 4
    logger.info("Imputing with the full predictor set...")
    full_imputer = StochasticRegressionImputer(predictors=FULL_PREDICTORS, n_iter=n_iter, random_state=seed)
    imputed = full_imputer.fit_transform(filtered)
    mask = full_imputer.missing_mask_

    logger.info("Imputing with the sensor-only predictor set...")
    sensor_imputer = StochasticRegressionImputer(predictors=SENSOR_PREDICTORS, n_iter=n_iter, random_state=seed)
    imputed_sensor = sensor_imputer.fit_transform(filtered)

    negatives = flag_negative_values(imputed, mask)
    negatives_sensor = flag_negative_values(imputed_sensor, mask)
    comparison = compare_imputations(imputed, imputed_sensor, mask)

    reporter.plot_observed_vs_imputed(imputed, mask)
    reporter.plot_imputation_comparison(imputed, imputed_sensor, mask, column='nmhc')
    reporter.plot_correlation_heatmap(correlation_matrix(imputed), name='correlation_heatmap_imputed')

    # Step 5
    X = standardize(imputed)
    pca_result = run_pca(X)
    hclust = hierarchical_clusters(X, n_clusters=n_clusters, sample_size=hclust_sample, random_state=seed)

    silhouette = None
    if k <= 0:
        silhouette = silhouette_sweep(X, k_range=K_RANGE, random_state=seed)
        k = int(silhouette.idxmax())
        reporter.plot_silhouette(silhouette)
    kmeans = kmeans_clusters(X, n_clusters=k, random_state=seed)
    embedding = tsne_embedding(X, sample_size=tsne_sample, random_state=seed)

    reporter.plot_screeplot(pca_result)
    reporter.plot_biplot(pca_result, labels=kmeans['labels'], random_state=seed)
    reporter.plot_dendrogram(hclust['linkage'], n_clusters)
    reporter.plot_clusters(pca_result['scores'], hclust['labels'], name='hierarchical')
    reporter.plot_clusters(pca_result['scores'], kmeans['labels'], name='kmeans')
    reporter.plot_tsne(embedding, labels=kmeans['labels'])

    # Step 6
    ttest = weekday_vs_sunday_ttest(imputed, REFERENCE_COLUMNS)
    pairwise = {p: pairwise_weekday_tests(imputed, p) for p in REFERENCE_COLUMNS}
    ks = ks_normality(imputed, REFERENCE_COLUMNS, group='trimester')

    cluster_sizes = pd.DataFrame({
        'hierarchical': hclust['labels'].value_counts().sort_index(),
        'kmeans': kmeans['labels'].value_counts().sort_index()
    })
    sections = {
        'summary statistics': summary,
        'missing values': missing_stats['counts'],
        'missing patterns': missing_stats['patterns'].head(10),
        'pt08 detector state vs reference missingness': missing_stats['crosstab'],
        'negative imputed values (full predictors)': negatives,
        'negative imputed values (sensor-only predictors)': negatives_sensor,
        'full vs sensor-only imputation': comparison,
        'pca explained variance': pd.DataFrame({
            'ratio': pca_result['explained_variance_ratio'],
            'cumulative': pca_result['cumulative_variance']
        }),
        'pca loadings': pca_result['loadings'],
        'cluster sizes': cluster_sizes,
        'working days vs sunday (paired t-test)': ttest,
        'ks normality by trimester': ks
    }
    if silhouette is not None:
        sections['silhouette sweep'] = silhouette
    for pollutant, table in pairwise.items():
        sections[f'pairwise weekday tests: {pollutant}'] = table
    report_path = reporter.write_report(sections)

    logger.info("Analysis completed.")
    return {
        'data': data,
        'summary': summary,
        'correlation': corr,
        'missing': missing_stats,
        'filtered': filtered,
        'imputed': imputed,
        'imputed_sensor': imputed_sensor,
        'missing_mask': mask,
        'negatives': negatives,
        'comparison': comparison,
        'standardized': X,
        'pca': pca_result,
        'hierarchical': hclust,
        'silhouette': silhouette,
        'kmeans': kmeans,
        'tsne': embedding,
        'ttest': ttest,
        'pairwise': pairwise,
        'ks': ks,
        'report_path': report_path,
        'figures': list(reporter.saved)
    }
