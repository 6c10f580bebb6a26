from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence

import pandas as pd
import pyarrow.parquet as pq


def ensure_parent_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def segment_parquet_path(input_dir: Path, filename: str = "segment.parquet") -> Path:
    return input_dir / filename


def connector_parquet_path(input_dir: Path, filename: str = "connector.parquet") -> Path:
    return input_dir / filename


def ways_bin_path(output_dir: Path, filename: str = "ways.bin") -> Path:
    return output_dir / filename


def way_nodes_bin_path(output_dir: Path, filename: str = "way_nodes.bin") -> Path:
    return output_dir / filename


def way_names_csv_path(output_dir: Path, filename: str = "way_names.csv") -> Path:
    return output_dir / filename


def temporary_path(path: Path) -> Path:
    return path.with_suffix(f"{path.suffix}.tmp")


def backup_path(path: Path) -> Path:
    return path.with_suffix(f"{path.suffix}.bak")


def save_csv(df: pd.DataFrame, path: Path) -> Path:
    ensure_parent_dir(path)
    df.to_csv(path, index=False)
    return path


def load_parquet(path: Path, columns: list[str] | None = None) -> pd.DataFrame:
    return pd.read_parquet(path, columns=columns)


def parquet_columns(path: Path) -> list[str]:
    return list(pq.read_schema(path).names)


def _commit(paths: Sequence[Path], tmps: Sequence[Path]) -> None:
    # (target, backup of the previous file or None)
    moved: list[tuple[Path, Optional[Path]]] = []
    try:
        for path, tmp in zip(paths, tmps):
            backup = None
            if path.exists():
                backup = backup_path(path)
                path.replace(backup)
            moved.append((path, backup))
            tmp.replace(path)
    except BaseException:
        for path, backup in reversed(moved):
            if backup is not None:
                backup.replace(path)
            else:
                path.unlink(missing_ok=True)
        raise
    for _, backup in moved:
        if backup is not None:
            backup.unlink(missing_ok=True)


@contextmanager
def staged_outputs(*paths: Path) -> Iterator[tuple[Path, ...]]:
    """Yield `<path>.tmp` paths to write into; move all of them over `paths` once the block succeeds.

    The outputs are replaced as a set: if the block raises, or any rename fails, the temporaries
    are removed and every previous file (if any) is left as it was.
    """

    tmps = tuple(temporary_path(path) for path in paths)
    for path in paths:
        ensure_parent_dir(path)
    try:
        yield tmps
        _commit(paths, tmps)
    finally:
        for tmp in tmps:
            tmp.unlink(missing_ok=True)
