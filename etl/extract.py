"""
CSV Data Extraction

Reads the states and turbines CSV files into pandas DataFrames.
Every cell is read as trimmed text; typing happens in etl.transform.
"""

import logging
from pathlib import Path
from typing import Iterable, Union

import pandas as pd

from etl.errors import ParseError

logger = logging.getLogger(__name__)

STATE_COLUMNS = ["StateType", "Name", "Abbreviation", "Capital", "Population", "Area"]

TURBINE_COLUMNS = [
    "case_id", "faa_ors", "faa_asn", "usgs_pr_id", "eia_id",
    "t_state", "t_county", "t_fips",
    "p_name", "p_year", "p_tnum", "p_cap",
    "t_manu", "t_model", "t_cap", "t_hh", "t_rd", "t_rsa", "t_ttlh",
    "retrofit", "retrofit_year", "t_conf_atr", "t_conf_loc",
    "t_img_date", "t_img_srce", "xlong", "ylat",
]


class CsvExtractor:
    """
    Extracts rows from a CSV file with a header line.

    Cells are kept as strings with surrounding whitespace removed and
    empty cells as "" (never NaN).
    """

    def extract(self, path: Union[str, Path], required_columns: Iterable[str]) -> pd.DataFrame:
        """
        Read a CSV file and check its header.

        Args:
            path: Location of the CSV file
            required_columns: Header names that must be present

        Returns:
            pandas DataFrame of trimmed string cells

        Raises:
            FileNotFoundError: If the file does not exist
            ParseError: If the file is malformed, has no header line, or lacks
                required columns
        """
        logger.info(f"Extracting rows from {path}")

        try:
            df = pd.read_csv(
                path,
                dtype=str,
                keep_default_na=False,
                skipinitialspace=True,
            )
        except pd.errors.EmptyDataError as e:
            raise ParseError(1, f"Missing required columns: {', '.join(required_columns)}") from e
        except pd.errors.ParserError as e:
            raise ParseError(0, f"Malformed CSV file {path}: {e}") from e

        df.columns = df.columns.str.strip()
        missing = [column for column in required_columns if column not in df.columns]
        if missing:
            raise ParseError(1, f"Missing required columns: {', '.join(missing)}")

        df = df.fillna("").apply(lambda column: column.str.strip())

        logger.info(f"Successfully extracted {len(df)} rows from {path}")
        logger.debug(f"Columns: {list(df.columns)}")

        return df


def fetch_states_csv(path: Union[str, Path]) -> pd.DataFrame:
    """Convenience function to read the states file."""
    return CsvExtractor().extract(path, STATE_COLUMNS)


def fetch_turbines_csv(path: Union[str, Path]) -> pd.DataFrame:
    """Convenience function to read the turbines file."""
    return CsvExtractor().extract(path, TURBINE_COLUMNS)
