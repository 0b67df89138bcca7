"""
This script loads and cleans the hourly air-quality sensor dataset (semicolon-delimited CSV, decimal commas,
missing readings encoded as -200) and characterises its missing values.

- Loading reads every cell as text and truncates the file to its fixed extent of 9357 hourly rows.
- Cleaning:
    - Drops the two empty trailing columns produced by the trailing ';;' of every line.
    - Converts decimal commas to dots and coerces measurement columns to float.
    - Replaces the -200 sentinel with NaN.
    - Decomposes the date into day/month/year and the time into an integer hour.
- Missing values analysis:
    - Counts missing values per column and tabulates the distinct missingness patterns.
    - Cross-tabulates the state of the PT08 detector (online/offline/partial) against the reference analyzers.
    - Flags rows where the PT08 detector is offline and the core reference columns are missing too.

Classes:
- MissingnessAnalyzer: Missing values analysis and unrecoverable-row filtering.

Functions:
- load_raw_data(path, n_rows): Read the raw CSV as text.
- clean_data(raw): Normalise decimals, sentinels, dates and hours.
- add_derived_fields(df): Add trimester, weekday and numeric_time.
- load_and_clean(path, n_rows): The three steps above in order.

Usage:
- python data_prep.py --data_path AirQualityUCI.csv
"""

import argparse
import logging
import numpy as np
import os
import pandas as pd
from tabulate import tabulate
from typing import Dict, List, Optional

# Configure logging
logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Constants
N_ROWS = 9357
MISSING_VALUE = -200.0
EMPTY_COLUMNS = ['Unnamed: 15', 'Unnamed: 16']

COLUMN_NAMES = {
    'Date': 'date_raw',
    'Time': 'time_raw',
    'CO(GT)': 'co',
    'PT08.S1(CO)': 'pt08_s1_co',
    'NMHC(GT)': 'nmhc',
    'C6H6(GT)': 'c6h6',
    'PT08.S2(NMHC)': 'pt08_s2_nmhc',
    'NOx(GT)': 'nox',
    'PT08.S3(NOx)': 'pt08_s3_nox',
    'NO2(GT)': 'no2',
    'PT08.S4(NO2)': 'pt08_s4_no2',
    'PT08.S5(O3)': 'pt08_s5_o3',
    'T': 'temperature',
    'RH': 'relative_humidity',
    'AH': 'absolute_humidity'
}

REFERENCE_COLUMNS = ['co', 'nmhc', 'c6h6', 'nox', 'no2']
PT08_COLUMNS = ['pt08_s1_co', 'pt08_s2_nmhc', 'pt08_s3_nox', 'pt08_s4_no2', 'pt08_s5_o3']
WEATHER_COLUMNS = ['temperature', 'relative_humidity', 'absolute_humidity']
MEASUREMENT_COLUMNS = ['co', 'pt08_s1_co', 'nmhc', 'c6h6', 'pt08_s2_nmhc', 'nox', 'pt08_s3_nox',
                       'no2', 'pt08_s4_no2', 'pt08_s5_o3'] + WEATHER_COLUMNS
CORE_REFERENCE_COLUMNS = ['co', 'nox', 'no2']

# Date/category helpers, never fed to imputation, PCA or clustering
HELPER_COLUMNS = ['day', 'month', 'year', 'date', 'time', 'trimester', 'weekday', 'numeric_time']

WEEKDAYS = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']


# LOADING AND CLEANING
def load_raw_data(path: str, n_rows: Optional[int] = N_ROWS) -> pd.DataFrame:
    """Read the semicolon-delimited file keeping every cell as text."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Data file not found: {path}")

    logger.info(f"Loading raw data from {path}...")
    raw = pd.read_csv(path, sep=';', dtype=str, nrows=n_rows)

    if n_rows is not None and len(raw) != n_rows:
        logger.warning(f"Expected {n_rows} rows, file provided {len(raw)}")
    logger.info(f"Loaded {raw.shape[0]} rows and {raw.shape[1]} columns")
    return raw


def clean_data(raw: pd.DataFrame) -> pd.DataFrame:
    """
    Normalise the raw text table into typed columns.

    Parameters:
        raw (pd.DataFrame): Table returned by load_raw_data.

    Returns:
        pd.DataFrame: Columns day, month, year, date, time and the 13 measurement columns
                      as floats, with the -200 sentinel replaced by NaN.

    Raises:
        ValueError: If a measurement token is not a number once its decimal comma is replaced,
                    or if a date/hour cannot be parsed. The message names the column and row.
    """
    df = raw.copy()

    # Empty trailing columns
    existing_empty = [col for col in EMPTY_COLUMNS if col in df.columns]
    df = df.drop(columns=existing_empty)
    logger.info(f"Dropped empty columns: {existing_empty}")

    missing_columns = [col for col in COLUMN_NAMES if col not in df.columns]
    if missing_columns:
        raise ValueError(f"Input is missing expected columns: {missing_columns}")
    df = df[list(COLUMN_NAMES)].rename(columns=COLUMN_NAMES)

    for col in MEASUREMENT_COLUMNS:
        df[col] = _to_float(df[col], col)

    # Sentinel -200 means "no reading"
    sentinel_counts = (df[MEASUREMENT_COLUMNS] == MISSING_VALUE).sum()
    df[MEASUREMENT_COLUMNS] = df[MEASUREMENT_COLUMNS].replace(MISSING_VALUE, np.nan)
    logger.info(f"Replaced {int(sentinel_counts.sum())} sentinel values with NaN")

    # Date dd/mm/yyyy
    dates = pd.to_datetime(df['date_raw'].str.strip(), format='%d/%m/%Y', errors='coerce')
    if dates.isna().any():
        row = dates.isna().idxmax()
        raise ValueError(f"Column 'Date' row {row}: invalid date token {df.loc[row, 'date_raw']!r}")
    df['day'] = dates.dt.day.astype(int)
    df['month'] = dates.dt.month.astype(int)
    df['year'] = dates.dt.year.astype(int)
    df['date'] = dates

    # Time HH.MM.SS -> hour
    hours = pd.to_numeric(df['time_raw'].str.strip().str.split('.').str[0], errors='coerce')
    bad_hours = hours.isna() | (hours < 0) | (hours > 23)
    if bad_hours.any():
        row = bad_hours.idxmax()
        raise ValueError(f"Column 'Time' row {row}: invalid time token {df.loc[row, 'time_raw']!r}")
    df['time'] = hours.astype(int)

    df = df[['day', 'month', 'year', 'date', 'time'] + MEASUREMENT_COLUMNS]
    return df


def _to_float(series: pd.Series, col: str) -> pd.Series:
    """(Private) Decimal comma to dot, then float. Empty and blank cells become NaN, anything else unparsable is fatal."""
    tokens = series.str.strip().str.replace(',', '.', regex=False)
    values = pd.to_numeric(tokens, errors='coerce')

    blank = tokens.notna() & (tokens == '')
    if blank.any():
        logger.warning(f"Column '{col}': {int(blank.sum())} blank cell(s) read as missing, "
                       f"first at row {blank.idxmax()}")

    malformed = values.isna() & tokens.notna() & (tokens != '')
    if malformed.any():
        row = malformed.idxmax()
        raise ValueError(
            f"Column '{col}' row {row}: non-numeric token {series.loc[row]!r} "
            f"({int(malformed.sum())} malformed value(s) in column)")
    return values.astype(float)


def add_derived_fields(df: pd.DataFrame) -> pd.DataFrame:
    """Add trimester, weekday and numeric_time (days since first observation plus fractional hour)."""
    df = df.copy()
    df['trimester'] = (df['month'] - 1) // 3 + 1
    df['weekday'] = pd.Categorical(df['date'].dt.day_name(), categories=WEEKDAYS, ordered=True)

    day_count = (df['date'] - df['date'].min()).dt.days
    df['numeric_time'] = day_count + df['time'] / 24.0
    return df


def load_and_clean(path: str, n_rows: Optional[int] = N_ROWS) -> pd.DataFrame:
    """Loader, Cleaner and derived fields in one call."""
    raw = load_raw_data(path, n_rows=n_rows)
    return add_derived_fields(clean_data(raw))


# ANALYZER CLASSES
class MissingnessAnalyzer:
    """Missing values analysis of the cleaned table and the unrecoverable-row policy."""

    def __init__(self, data: pd.DataFrame, columns: List[str] = None):
        self.data = data
        self.columns = columns if columns is not None else MEASUREMENT_COLUMNS

    def missing_counts(self) -> pd.DataFrame:
        """Missing values per column, absolute and as a percentage of rows."""
        counts = self.data[self.columns].isna().sum()
        return pd.DataFrame({
            'missing': counts,
            'missing_percentage': counts / len(self.data) * 100
        })

    def missing_patterns(self) -> pd.DataFrame:
        """
        Distinct row-wise missingness patterns.

        Each row of the result is one pattern: a 0/1 flag per column (1 = missing),
        the number of rows sharing it and the number of missing columns in it.
        Most frequent patterns come first.
        """
        mask = self.data[self.columns].isna().astype(int)
        patterns = mask.value_counts().reset_index()
        patterns.columns = self.columns + ['n_rows']
        patterns['n_missing'] = patterns[self.columns].sum(axis=1)
        return patterns.sort_values('n_rows', ascending=False).reset_index(drop=True)

    def detector_state(self) -> pd.Series:
        """State of the PT08 detector per row: 'online', 'offline' or 'partial'."""
        n_missing = self.data[PT08_COLUMNS].isna().sum(axis=1)
        state = pd.Series('partial', index=self.data.index)
        state[n_missing == 0] = 'online'
        state[n_missing == len(PT08_COLUMNS)] = 'offline'
        return state

    def detector_crosstab(self) -> pd.DataFrame:
        """Rows per detector state, and how many of them miss each reference column."""
        state = self.detector_state().rename('pt08_state')
        missing_reference = self.data[REFERENCE_COLUMNS].isna()

        table = missing_reference.groupby(state).sum()
        table.insert(0, 'n_rows', state.value_counts())
        return table

    def check_detector_consistency(self) -> pd.Index:
        """Rows where only part of the PT08 detector is missing. These break the block pattern and are logged."""
        state = self.detector_state()
        partial = state.index[state == 'partial']
        if len(partial) > 0:
            logger.warning(f"{len(partial)} row(s) with partial PT08 missingness, "
                           f"first rows: {list(partial[:10])}")
        else:
            logger.info("PT08 detector is either fully online or fully offline on every row")
        return partial

    def unrecoverable_rows(self, core_columns: List[str] = None, rule: str = 'any') -> pd.Series:
        """
        Rows with the PT08 detector offline and the core reference columns missing.

        Parameters:
            core_columns (list): Reference columns checked. Defaults to CO, NOx and NO2.
            rule (str): 'any' flags the row when at least one core column is missing,
                        'all' only when every core column is missing.

        Returns:
            pd.Series: Boolean mask aligned with the data.
        """
        core_columns = core_columns if core_columns is not None else CORE_REFERENCE_COLUMNS
        unknown = [col for col in core_columns if col not in self.data.columns]
        if unknown:
            raise ValueError(f"Unknown core columns: {unknown}")

        core_missing = self.data[core_columns].isna()
        if rule == 'any':
            core_missing = core_missing.any(axis=1)
        elif rule == 'all':
            core_missing = core_missing.all(axis=1)
        else:
            raise ValueError(f"Invalid rule: {rule}")

        detector_offline = self.data[PT08_COLUMNS].isna().all(axis=1)
        return detector_offline & core_missing

    def drop_unrecoverable(self, core_columns: List[str] = None, rule: str = 'any') -> pd.DataFrame:
        """Remove the unrecoverable rows. Original row labels are kept."""
        to_drop = self.unrecoverable_rows(core_columns, rule)
        logger.info(f"Dropping {int(to_drop.sum())} unrecoverable rows "
                    f"(PT08 offline and {rule} of {core_columns or CORE_REFERENCE_COLUMNS} missing)")
        return self.data[~to_drop]

    def analyze(self) -> Dict:
        """Run the full missing values analysis."""
        logger.info("Analyzing missing values...")
        return {
            'counts': self.missing_counts(),
            'patterns': self.missing_patterns(),
            'crosstab': self.detector_crosstab(),
            'partial_rows': self.check_detector_consistency()
        }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description='Air quality data cleaning and missing values analysis')
    parser.add_argument('--data_path', default='AirQualityUCI.csv',
                        help='Path to the semicolon-delimited data file')
    args = parser.parse_args()

    data = load_and_clean(args.data_path)
    analyzer = MissingnessAnalyzer(data)
    stats = analyzer.analyze()

    print(tabulate(stats['counts'], headers='keys', tablefmt='fancy_grid', floatfmt='.2f'))
    print(tabulate(stats['crosstab'], headers='keys', tablefmt='fancy_grid'))
    filtered = analyzer.drop_unrecoverable()
    print(f"Rows after filtering: {len(filtered)} (removed {len(data) - len(filtered)})")
