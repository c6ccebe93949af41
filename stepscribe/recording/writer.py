"""Output helpers for the run tables.

Parquet keeps the nullable columns and stores the export units in the schema
metadata, CSV is written through :mod:`pandas`, and ROOT files get one TTree
per table through :mod:`uproot`. Destination directories are created when
necessary.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from ..errors import ConfigurationError
from .export import RunTables

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("parquet", "csv", "root")

# ROOT branches cannot hold missing values
_ROOT_INT_SENTINEL = -1
_ROOT_PID_SENTINEL = 0


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_parquet(df: pd.DataFrame, path: Path, *, units: Optional[Mapping[str, str]] = None, compression: str = "snappy") -> None:
    _ensure_parent(path)
    table = pa.Table.from_pandas(df, preserve_index=False)
    metadata = dict(table.schema.metadata or {})
    column_units = {name: unit for name, unit in (units or {}).items() if name in df.columns}
    metadata[b"units"] = json.dumps(column_units, sort_keys=True).encode("utf-8")
    table = table.replace_schema_metadata(metadata)
    compression_arg = None if compression == "none" else compression
    pq.write_table(table, path, compression=compression_arg)


def write_csv(df: pd.DataFrame, path: Path) -> None:
    _ensure_parent(path)
    df.to_csv(path, index=False)


def _root_branches(df: pd.DataFrame) -> Dict[str, np.ndarray]:
    branches: Dict[str, np.ndarray] = {}
    for name in df.columns:
        column = df[name]
        dtype = str(column.dtype)
        if dtype == "Int64":
            sentinel = _ROOT_PID_SENTINEL if name == "pid" else _ROOT_INT_SENTINEL
            branches[name] = column.to_numpy(dtype=np.int64, na_value=sentinel)
        elif dtype == "Float64":
            branches[name] = column.to_numpy(dtype=np.float64, na_value=np.nan)
        else:
            branches[name] = column.to_numpy()
    return branches


def write_root(tables: RunTables, path: Path) -> None:
    try:
        import uproot  # type: ignore
    except Exception as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("The 'uproot' package is required to write ROOT files") from exc

    _ensure_parent(path)
    with uproot.recreate(path) as handle:
        for name, frame in tables.items():
            handle[name] = _root_branches(frame)


def write_tables(tables: RunTables, output_dir: Path | str, formats: Iterable[str] = ("parquet",), *, stem: str = "run") -> List[Path]:
    """Write every table in each requested format and return the created paths."""

    directory = Path(output_dir)
    requested = [fmt.lower() for fmt in formats]
    unknown = sorted(set(requested).difference(SUPPORTED_FORMATS))
    if unknown:
        raise ConfigurationError(
            f"Unsupported output format(s): {', '.join(unknown)}. Supported formats: {', '.join(SUPPORTED_FORMATS)}"
        )
    written: List[Path] = []
    for fmt in dict.fromkeys(requested):
        if fmt == "root":
            path = directory / f"{stem}.root"
            write_root(tables, path)
            written.append(path)
            continue
        for name, frame in tables.items():
            path = directory / f"{stem}_{name}.{fmt}"
            if fmt == "parquet":
                write_parquet(frame, path, units=tables.units)
            else:
                write_csv(frame, path)
            written.append(path)
    for path in written:
        logger.info("Wrote %s", path)
    return written


__all__ = ["SUPPORTED_FORMATS", "write_csv", "write_parquet", "write_root", "write_tables"]
