from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd

from splatanchor.domain.schemas import EnuParams


def read_ground_points(path: str | Path) -> np.ndarray:
    """Reads an x,y,z CSV of splat-local ground samples into an Nx3 array."""
    df = pd.read_csv(path)
    # Normalize column names to lowercase to be case-insensitive
    df.columns = [str(c).strip().lower() for c in df.columns]

    missing = {"x", "y", "z"} - set(df.columns)
    if missing:
        raise ValueError(f"CSV must include columns x,y,z (missing {sorted(missing)})")

    return df[["x", "y", "z"]].dropna().to_numpy(dtype=float)


def read_params(path: str | Path) -> EnuParams:
    return EnuParams.from_snapshot(Path(path).read_text(encoding="utf-8"))


def save_params(path: str | Path, params: EnuParams) -> None:
    Path(path).write_text(params.to_snapshot(), encoding="utf-8")
