import logging
import numpy as np
import pandas as pd
import scipy.stats as stats
from sklearn.linear_model import LinearRegression
from tqdm import tqdm
from typing import Dict, List, Optional
from data_prep import MEASUREMENT_COLUMNS, REFERENCE_COLUMNS, WEATHER_COLUMNS

"""
Stochastic regression imputation of the measurement columns.

Every incomplete column is regressed on its predictors and its missing cells receive the
prediction plus Gaussian noise drawn with the residual standard deviation, so imputed values
keep the spread of the observed ones. Columns are visited in chained sweeps: the first sweep
starts from random draws of observed values, later sweeps use the previous imputations.

Two predictor pools are compared in the analysis:
- FULL_PREDICTORS: every measurement column.
- SENSOR_PREDICTORS: the same without temperature and humidity.
"""

FULL_PREDICTORS = list(MEASUREMENT_COLUMNS)
SENSOR_PREDICTORS = [col for col in MEASUREMENT_COLUMNS if col not in WEATHER_COLUMNS]
CONCENTRATION_COLUMNS = REFERENCE_COLUMNS

RANDOM_STATE = 42
N_ITER = 10

logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


class StochasticRegressionImputer:
    def __init__(self, predictors: Optional[List[str]] = None, n_iter: int = N_ITER,
                 random_state: int = RANDOM_STATE):
        assert n_iter >= 1, 'At least one sweep is required'
        self.predictors = predictors
        self.n_iter = n_iter
        self.random_state = random_state

        # Filled by fit_transform
        self.missing_mask_ = None
        self.coefficients_: Dict[str, pd.Series] = {}
        self.residual_std_: Dict[str, float] = {}

    def fit_transform(self, data: pd.DataFrame, columns: List[str] = None) -> pd.DataFrame:
        """
        Impute every missing cell of `columns` (default: the 13 measurement columns).

        Columns outside `columns` are returned untouched. The predictor pool is restricted to
        `self.predictors` when given; a column is never used to predict itself.
        """
        columns = columns if columns is not None else MEASUREMENT_COLUMNS
        pool = self.predictors if self.predictors is not None else columns
        unknown = [col for col in pool if col not in columns]
        if unknown:
            raise ValueError(f"Predictors not among the imputed columns: {unknown}")

        rng = np.random.default_rng(self.random_state)
        X = data[columns].astype(float).copy()
        mask = X.isna()
        self.missing_mask_ = mask
        self.coefficients_ = {}
        self.residual_std_ = {}

        # Least missing first
        targets = [col for col in mask.sum().sort_values(kind='stable').index if mask[col].any()]
        if not targets:
            logger.info("No missing values to impute")
            return data.copy()

        for col in columns:
            if mask[col].all():
                raise ValueError(f"Column '{col}' has no observed values to impute from")

        # Initial fill: random draws from the observed values of each column
        for col in targets:
            observed = X.loc[~mask[col], col].to_numpy()
            X.loc[mask[col], col] = rng.choice(observed, size=int(mask[col].sum()), replace=True)

        logger.info(f"Imputing {len(targets)} column(s) with {len(pool)} candidate predictors, "
                    f"{self.n_iter} sweep(s), seed {self.random_state}")
        for _ in tqdm(range(self.n_iter), desc="Imputation sweeps"):
            for target in targets:
                X.loc[mask[target], target] = self._impute_column(X, mask, target, pool, rng)

        assert not X.isna().any().any(), 'Missing values left after imputation'

        result = data.copy()
        result[columns] = X
        return result

    def _impute_column(self, X: pd.DataFrame, mask: pd.DataFrame, target: str, pool: List[str],
                       rng: np.random.Generator) -> np.ndarray:
        """(Private) One regression draw for the missing cells of `target`."""
        predictors = [col for col in pool if col != target]
        if not predictors:
            raise ValueError(f"No predictors left for column '{target}'")

        observed = ~mask[target]
        X_obs = X.loc[observed, predictors].to_numpy()
        y_obs = X.loc[observed, target].to_numpy()

        model = LinearRegression()
        model.fit(X_obs, y_obs)

        residuals = y_obs - model.predict(X_obs)
        dof = max(len(y_obs) - len(predictors) - 1, 1)
        sigma = np.sqrt(np.sum(residuals ** 2) / dof)

        self.coefficients_[target] = pd.Series(
            np.append(model.intercept_, model.coef_), index=['intercept'] + predictors)
        self.residual_std_[target] = sigma

        X_mis = X.loc[mask[target], predictors].to_numpy()
        return model.predict(X_mis) + rng.normal(0.0, sigma, size=X_mis.shape[0])


def flag_negative_values(imputed: pd.DataFrame, mask: pd.DataFrame,
                         columns: List[str] = None) -> pd.DataFrame:
    """
    Report imputed concentrations below zero.

    Negative values are physically impossible and point at the regression model, so they are
    logged and tabulated but left in place.
    """
    columns = columns if columns is not None else CONCENTRATION_COLUMNS
    rows = []
    for col in columns:
        imputed_values = imputed.loc[mask[col], col]
        negative = imputed_values[imputed_values < 0]
        if len(negative) > 0:
            logger.warning(f"Column '{col}': {len(negative)} negative imputed value(s), "
                           f"min {negative.min():.3f}, rows {list(negative.index[:10])}")
        rows.append({
            'column': col,
            'n_imputed': int(mask[col].sum()),
            'n_negative': len(negative),
            'negative_percentage': len(negative) / mask[col].sum() * 100 if mask[col].any() else 0.0,
            'min_imputed': imputed_values.min() if len(imputed_values) > 0 else np.nan
        })
    return pd.DataFrame(rows).set_index('column')


def compare_imputations(first: pd.DataFrame, second: pd.DataFrame, mask: pd.DataFrame,
                        columns: List[str] = None) -> pd.DataFrame:
    """Compare the cells filled by two imputation runs, column by column."""
    columns = columns if columns is not None else MEASUREMENT_COLUMNS
    rows = []
    for col in columns:
        if not mask[col].any():
            continue
        a = first.loc[mask[col], col]
        b = second.loc[mask[col], col]
        ks = stats.ks_2samp(a, b)
        rows.append({
            'column': col,
            'n_imputed': int(mask[col].sum()),
            'mean_first': a.mean(),
            'mean_second': b.mean(),
            'std_first': a.std(),
            'std_second': b.std(),
            'mean_abs_diff': (a - b).abs().mean(),
            'ks_statistic': ks.statistic,
            'ks_pvalue': ks.pvalue
        })
    return pd.DataFrame(rows).set_index('column')
