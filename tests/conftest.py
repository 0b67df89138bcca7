import matplotlib
matplotlib.use('Agg')

import numpy as np
import pandas as pd
import pytest
from datetime import datetime, timedelta

N_HOURS = 672
HEADER = 'Date;Time;CO(GT);PT08.S1(CO);NMHC(GT);C6H6(GT);PT08.S2(NMHC);NOx(GT);PT08.S3(NOx);NO2(GT);' \
         'PT08.S4(NO2);PT08.S5(O3);T;RH;AH;;'
RAW_ORDER = ['co', 'pt08_s1_co', 'nmhc', 'c6h6', 'pt08_s2_nmhc', 'nox', 'pt08_s3_nox', 'no2',
             'pt08_s4_no2', 'pt08_s5_o3', 'temperature', 'relative_humidity', 'absolute_humidity']
DECIMALS = {'co': 1, 'c6h6': 1, 'temperature': 1, 'relative_humidity': 1, 'absolute_humidity': 4}

# PT08 detector offline on these rows, with the reference analyzers partly missing
OFFLINE_WITH_CORE_MISSING = range(100, 120)
CO_MISSING = range(100, 105)
NOX_NO2_MISSING = range(100, 103)
OFFLINE_RECOVERABLE = range(200, 210)
NMHC_MISSING = range(300, 600)
CO_SCATTERED_MISSING = range(400, 411)


def synthetic_measurements(n: int = N_HOURS, seed: int = 0) -> pd.DataFrame:
    """Hourly measurements with a traffic factor driving pollutants and sensors, and NMHC driven by temperature."""
    rng = np.random.default_rng(seed)
    hours = np.arange(n)
    traffic = 1 + 0.8 * np.sin(2 * np.pi * ((hours + 18) % 24 - 8) / 24) + rng.normal(0, 0.3, n)
    temperature = 15 + 8 * np.sin(2 * np.pi * hours / n) + rng.normal(0, 1, n)

    return pd.DataFrame({
        'co': 2 + 1.2 * traffic + rng.normal(0, 0.2, n),
        'pt08_s1_co': 1000 + 200 * traffic + rng.normal(0, 20, n),
        'nmhc': 200 + 12 * (temperature - 15) + rng.normal(0, 5, n),
        'c6h6': 8 + 5 * traffic + rng.normal(0, 0.5, n),
        'pt08_s2_nmhc': 900 + 250 * traffic + rng.normal(0, 20, n),
        'nox': 150 + 80 * traffic + rng.normal(0, 10, n),
        'pt08_s3_nox': 1100 - 200 * traffic + rng.normal(0, 20, n),
        'no2': 90 + 30 * traffic + rng.normal(0, 5, n),
        'pt08_s4_no2': 1500 + 150 * traffic + rng.normal(0, 20, n),
        'pt08_s5_o3': 1000 + 300 * traffic + rng.normal(0, 30, n),
        'temperature': temperature,
        'relative_humidity': 60 - 1.5 * (temperature - 15) + rng.normal(0, 3, n),
        'absolute_humidity': 0.8 + 0.03 * (temperature - 15) + rng.normal(0, 0.05, n),
    })


def apply_sentinels(values: pd.DataFrame) -> pd.DataFrame:
    values = values.copy()
    pt08 = [c for c in values.columns if c.startswith('pt08')]
    weather = ['temperature', 'relative_humidity', 'absolute_humidity']
    for rows in (OFFLINE_WITH_CORE_MISSING, OFFLINE_RECOVERABLE):
        values.loc[list(rows), pt08 + weather] = -200
    values.loc[list(CO_MISSING), 'co'] = -200
    values.loc[list(NOX_NO2_MISSING), ['nox', 'no2']] = -200
    values.loc[list(NMHC_MISSING), 'nmhc'] = -200
    values.loc[list(CO_SCATTERED_MISSING), 'co'] = -200
    return values


def format_value(col: str, value: float) -> str:
    if value == -200:
        return '-200'
    decimals = DECIMALS.get(col, 0)
    if decimals == 0:
        return str(int(round(value)))
    return f'{value:.{decimals}f}'.replace('.', ',')


def raw_lines(values: pd.DataFrame, start: datetime = datetime(2004, 3, 10, 18)) -> list:
    lines = [HEADER]
    for i, row in values.iterrows():
        ts = start + timedelta(hours=i)
        cells = [ts.strftime('%d/%m/%Y'), ts.strftime('%H.00.00')]
        cells += [format_value(col, row[col]) for col in RAW_ORDER]
        lines.append(';'.join(cells) + ';;')
    return lines


@pytest.fixture(scope='session')
def measurements() -> pd.DataFrame:
    return synthetic_measurements()


@pytest.fixture(scope='session')
def raw_csv_path(tmp_path_factory, measurements):
    lines = raw_lines(apply_sentinels(measurements))
    # Filler rows after the data, as in the published file
    lines += [';' * 16] * 5
    path = tmp_path_factory.mktemp('data') / 'AirQualityUCI.csv'
    path.write_text('\n'.join(lines) + '\n', encoding='utf-8')
    return str(path)


@pytest.fixture
def cleaned(raw_csv_path):
    from data_prep import load_and_clean
    return load_and_clean(raw_csv_path, n_rows=N_HOURS)


@pytest.fixture
def filtered(cleaned):
    from data_prep import MissingnessAnalyzer
    return MissingnessAnalyzer(cleaned).drop_unrecoverable()
