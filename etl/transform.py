"""
Row Normalization

Converts extracted DataFrames into typed StateRecord and TurbineRecord values.
The first row that cannot be typed stops the transformation.
"""

import logging
from typing import Any, Callable, Dict, List

import pandas as pd

from etl.errors import InvalidEnumValueError, ParseError
from etl.models import ConfidenceLevel, StateRecord, StateType, TurbineRecord

logger = logging.getLogger(__name__)

TRUE_VALUES = {"1", "true", "t", "yes", "y"}
FALSE_VALUES = {"", "0", "false", "f", "no", "n"}

# header line is line 1
FIRST_DATA_LINE = 2


def parse_required(value: str) -> str:
    if value == "":
        raise ValueError("value is required")
    return value


def parse_int(value: str) -> int:
    if value == "":
        raise ValueError("value is required")
    try:
        return int(value)
    except ValueError:
        number = float(value)
        if not number.is_integer():
            raise ValueError(f"expected an integer, got {value!r}")
        return int(number)


def parse_float(value: str) -> float:
    if value == "":
        raise ValueError("value is required")
    return float(value)


def parse_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValueError(f"expected a boolean, got {value!r}")


def optional(parser: Callable[[str], Any]) -> Callable[[str], Any]:
    """Wrap a parser so that an empty cell yields None."""

    def parse(value: str) -> Any:
        if value == "":
            return None
        return parser(value)

    return parse


class RowTransformer:
    """
    Types each row of a DataFrame with a column -> parser table.

    Subclasses set COLUMN_PARSERS and implement _build_record.
    """

    COLUMN_PARSERS: Dict[str, Callable[[str], Any]] = {}

    def transform(self, df: pd.DataFrame) -> List[Any]:
        """
        Convert every row of the DataFrame.

        Raises:
            ParseError: If a cell cannot be converted to its column type
            InvalidEnumValueError: If a code has no enumerated value
        """
        if df.empty:
            logger.warning("Input DataFrame is empty")
            return []

        logger.info(f"Starting transformation of {len(df)} rows")

        records = []
        for line_number, row in enumerate(df.to_dict("records"), FIRST_DATA_LINE):
            values = self._parse_row(row, line_number)
            try:
                records.append(self._build_record(values))
            except InvalidEnumValueError as e:
                error = type(e)(e.value, row_number=line_number)
                logger.error(str(error))
                raise error from e

        logger.info(f"Transformation complete: {len(records)} records")
        return records

    def _parse_row(self, row: Dict[str, str], line_number: int) -> Dict[str, Any]:
        values = {}
        for column, parser in self.COLUMN_PARSERS.items():
            try:
                values[column] = parser(row[column])
            except (ValueError, TypeError) as e:
                raise ParseError(line_number, f"column '{column}': {e}") from e
        return values

    def _build_record(self, values: Dict[str, Any]) -> Any:
        raise NotImplementedError


class StateTransformer(RowTransformer):
    COLUMN_PARSERS = {
        "StateType": str,
        "Name": parse_required,
        "Abbreviation": parse_required,
        "Capital": optional(str),
        "Population": optional(parse_int),
        "Area": optional(parse_int),
    }

    def _build_record(self, values: Dict[str, Any]) -> StateRecord:
        return StateRecord(
            state_type=StateType.from_code(values["StateType"]),
            name=values["Name"],
            abbreviation=values["Abbreviation"],
            capital=values["Capital"],
            population=values["Population"],
            area=values["Area"],
        )


class TurbineTransformer(RowTransformer):
    COLUMN_PARSERS = {
        "case_id": parse_int,
        "faa_ors": str,
        "faa_asn": str,
        "usgs_pr_id": optional(parse_int),
        "eia_id": optional(parse_int),
        "t_state": str,
        "t_county": str,
        "t_fips": parse_int,
        "p_name": str,
        "p_year": optional(parse_int),
        "p_tnum": parse_int,
        "p_cap": optional(parse_float),
        "t_manu": str,
        "t_model": str,
        "t_cap": optional(parse_int),
        "t_hh": optional(parse_float),
        "t_rd": optional(parse_float),
        "t_rsa": optional(parse_float),
        "t_ttlh": optional(parse_float),
        "retrofit": parse_bool,
        "retrofit_year": optional(parse_int),
        "t_conf_atr": parse_int,
        "t_conf_loc": parse_int,
        "t_img_date": str,
        "t_img_srce": str,
        "xlong": parse_float,
        "ylat": parse_float,
    }

    def _build_record(self, values: Dict[str, Any]) -> TurbineRecord:
        values["t_conf_atr"] = ConfidenceLevel.from_code(values["t_conf_atr"])
        values["t_conf_loc"] = ConfidenceLevel.from_code(values["t_conf_loc"])
        return TurbineRecord(**values)


def transform_states(df: pd.DataFrame) -> List[StateRecord]:
    """Convenience function to type the states DataFrame."""
    return StateTransformer().transform(df)


def transform_turbines(df: pd.DataFrame) -> List[TurbineRecord]:
    """Convenience function to type the turbines DataFrame."""
    return TurbineTransformer().transform(df)
