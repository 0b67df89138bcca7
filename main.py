import argparse
import logging
import helpers as hlp


logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Air quality exploratory analysis: cleaning, imputation, PCA, clustering and tests.')
    parser.add_argument('--data_path', type=str, default='AirQualityUCI.csv', help='Semicolon-delimited input file.')
    parser.add_argument('--output_dir', type=str, default='explorer', help='Directory for figures and the text report.')
    parser.add_argument('--visualization', '-v', choices=['visualize', 'save', 'both', 'none'], default='save',
                        help='Action for plots.')
    parser.add_argument('--n_rows', type=int, default=hlp.N_ROWS, help='Rows kept from the input file (0 keeps all).')
    parser.add_argument('--core_columns', type=str, default=','.join(hlp.CORE_REFERENCE_COLUMNS),
                        help='Comma-separated reference columns of the row removal policy.')
    parser.add_argument('--rule', choices=['any', 'all'], default='any',
                        help='Drop a PT08-offline row when any/all core columns are missing.')
    parser.add_argument('--n_iter', type=int, default=hlp.N_ITER, help='Imputation sweeps.')
    parser.add_argument('--seed', type=int, default=hlp.RANDOM_STATE, help='Random seed.')
    parser.add_argument('--n_clusters', type=int, default=hlp.N_HCLUST, help='Clusters cut from the hierarchical tree.')
    parser.add_argument('--k', type=int, default=0, help='K-means clusters (0 picks k by silhouette score).')
    parser.add_argument('--hclust_sample', type=int, default=None, help='Rows used for hierarchical clustering.')
    parser.add_argument('--tsne_sample', type=int, default=hlp.TSNE_SAMPLE, help='Rows used for t-SNE.')

    args = parser.parse_args()

    try:
        results = hlp.run_analysis(
            data_path=args.data_path,
            output_dir=args.output_dir,
            action=args.visualization,
            n_rows=args.n_rows or None,
            core_columns=[c.strip() for c in args.core_columns.split(',') if c.strip()],
            rule=args.rule,
            n_iter=args.n_iter,
            seed=args.seed,
            n_clusters=args.n_clusters,
            k=args.k,
            hclust_sample=args.hclust_sample,
            tsne_sample=args.tsne_sample
        )
    except Exception:
        logger.exception("Analysis failed.")
        raise

    print(f"Rows analysed: {len(results['imputed'])} (removed {len(results['data']) - len(results['filtered'])})")
    print(f"Report: {results['report_path']}")
