"""
Market Data Loader

Reads one OHLCV file per symbol and hands the pipeline a sanitized,
chronological ``PricePoint`` series. The scoring core never re-validates
its input, so every malformed row is dropped here:

    - missing or non-numeric fields
    - non-positive open/high/low/close, negative volume
    - high < low, high < max(open, close), low > min(open, close)
    - duplicate timestamps (last row wins)

Expected columns (case-insensitive): timestamp, open, high, low, close,
volume. ``timestamp`` may be epoch milliseconds or any date string pandas
can parse (naive dates are taken as UTC).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from .models import OHLCV_COLUMNS, PricePoint, frame_to_series

# Module-level logger
logger = logging.getLogger(__name__)

REQUIRED_FIELDS: Tuple[str, ...] = ("timestamp", "open", "high", "low", "close", "volume")


def _to_epoch_ms(raw: pd.Series) -> pd.Series:
    numeric = pd.to_numeric(raw, errors="coerce")
    if pd.api.types.is_numeric_dtype(raw) or numeric.notna().all():
        return numeric
    parsed = pd.to_datetime(raw, errors="coerce", utc=True)
    ms = pd.Series(np.nan, index=raw.index)
    valid = parsed.notna()
    ms[valid] = (parsed[valid] - pd.Timestamp(0, tz="UTC")) // pd.Timedelta(milliseconds=1)
    return ms


def sanitize_frame(df: pd.DataFrame, symbol: str) -> Tuple[pd.DataFrame, int]:
    """
    Normalize and filter a raw OHLCV table.

    Returns
    -------
    Tuple[pd.DataFrame, int]
        (clean frame in the pipeline layout, number of rows dropped)

    Raises
    ------
    ValueError
        If a required column is missing.
    """
    df = df.rename(columns={c: str(c).strip().lower() for c in df.columns})
    missing = [c for c in REQUIRED_FIELDS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    raw_rows = len(df)
    clean = pd.DataFrame({"Timestamp": _to_epoch_ms(df["timestamp"])})
    for field, column in zip(REQUIRED_FIELDS[1:], OHLCV_COLUMNS):
        clean[column] = pd.to_numeric(df[field], errors="coerce")

    clean = clean.dropna(how="any")

    o, h, l, c, v = (clean[col] for col in OHLCV_COLUMNS)
    valid = (
        (o > 0) & (h > 0) & (l > 0) & (c > 0) & (v >= 0)
        & (h >= l)
        & (h >= np.maximum(o, c))
        & (l <= np.minimum(o, c))
    )
    clean = clean[valid]

    clean = (
        clean.astype({"Timestamp": "int64"})
        .drop_duplicates(subset="Timestamp", keep="last")
        .sort_values("Timestamp")
    )
    clean.index = pd.to_datetime(clean["Timestamp"], unit="ms", utc=True)
    clean.index.name = None
    clean.attrs["symbol"] = symbol

    dropped = raw_rows - len(clean)
    if dropped:
        logger.warning(f"{symbol}: dropped {dropped} malformed rows of {raw_rows}")
    return clean, dropped


def load_csv(path: Path, symbol: Optional[str] = None) -> List[PricePoint]:
    """Load one symbol's CSV; the symbol defaults to the upper-cased file stem."""
    path = Path(path)
    symbol = (symbol or path.stem).upper()
    frame, _ = sanitize_frame(pd.read_csv(path), symbol)
    logger.info(f"Loaded {symbol}: {len(frame)} bars from {path}")
    return frame_to_series(frame, symbol)


def load_directory(
    directory: Path,
    symbols: Optional[Iterable[str]] = None
) -> Dict[str, List[PricePoint]]:
    """
    Load ``<SYMBOL>.csv`` files from a directory.

    Files that cannot be read are logged and skipped; a requested symbol
    without a file is logged as missing.
    """
    directory = Path(directory)
    wanted = {s.strip().upper() for s in symbols if s.strip()} if symbols else None

    series: Dict[str, List[PricePoint]] = {}
    for path in sorted(directory.glob("*.csv")):
        symbol = path.stem.upper()
        if wanted is not None and symbol not in wanted:
            continue
        try:
            series[symbol] = load_csv(path, symbol)
        except (OSError, ValueError, pd.errors.ParserError) as e:
            logger.error(f"Could not load {path}: {e}")

    if wanted:
        for symbol in sorted(wanted - set(series)):
            logger.warning(f"No data file for {symbol} in {directory}")
    return series


def read_symbol_list(path: Path) -> List[str]:
    """One symbol per line; blank lines and ``#`` comments are ignored."""
    symbols = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        line = line.split("#", 1)[0].strip().upper()
        if line:
            symbols.append(line)
    return symbols
