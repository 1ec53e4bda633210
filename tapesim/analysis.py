"""Post-run analysis of strategy comparisons.

Works on the DataFrame produced by Statistics.to_dataframe() or read
back from an exported parquet file.
"""

import logging
from pathlib import Path
from typing import Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

BASELINE_STRATEGY = "none"


def load_results(path: str) -> pd.DataFrame:
    """Load exported results (parquet or csv)."""
    if Path(path).suffix == ".csv":
        return pd.read_csv(path)
    return pd.read_parquet(path)


def speedup_table(df: pd.DataFrame, baseline: str = BASELINE_STRATEGY) -> pd.DataFrame:
    """Add a `speedup` column relative to the baseline strategy.

    speedup = baseline average_access_time / strategy average_access_time.
    Rows whose average is zero get NaN. When the baseline appears more
    than once (several comparisons in one log), its last row is used.

    Raises:
        ValueError: If the baseline strategy is not in df.
    """
    base_rows = df[df["strategy"] == baseline]
    if base_rows.empty:
        raise ValueError(f"Baseline strategy {baseline!r} not found in results")
    base_avg = float(base_rows["average_access_time"].iloc[-1])

    out = df.copy()
    avg = out["average_access_time"].astype(float)
    out["speedup"] = np.where(avg > 0, base_avg / avg.where(avg > 0, 1.0), np.nan)
    return out


def format_speedups(df: pd.DataFrame, baseline: str = BASELINE_STRATEGY) -> list[str]:
    """Human-readable speedup lines for every non-baseline strategy."""
    table = speedup_table(df, baseline)
    lines = []
    for _, row in table[table["strategy"] != baseline].iterrows():
        if np.isnan(row["speedup"]):
            lines.append(f"{row['strategy_name']} speedup vs no index strategy: n/a "
                         f"(zero average access time)")
        else:
            lines.append(f"{row['strategy_name']} is {row['speedup']:.2f}x faster "
                         f"than no index strategy")
    return lines


def plot_comparison(
    df: pd.DataFrame,
    output_path: str,
    title: Optional[str] = None,
    dpi: int = 150,
) -> None:
    """Bar chart of index build time and average access time per strategy."""
    names = df["strategy_name"].tolist()
    x = np.arange(len(names))

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(12, 5))

    ax1.bar(x, df["index_build_time"], color="#2E86AB")
    ax1.set_xticks(x)
    ax1.set_xticklabels(names, rotation=15)
    ax1.set_ylabel("Index build time (s)", fontsize=12, fontweight="bold")
    ax1.grid(True, axis="y", alpha=0.3)

    ax2.bar(x, df["average_access_time"], color="#A23B72")
    ax2.set_xticks(x)
    ax2.set_xticklabels(names, rotation=15)
    ax2.set_ylabel("Average access time (s)", fontsize=12, fontweight="bold")
    ax2.set_yscale("symlog", linthresh=1e-3)
    ax2.grid(True, axis="y", alpha=0.3)

    if title:
        plt.suptitle(title, fontsize=14, fontweight="bold")
    plt.tight_layout()
    plt.savefig(output_path, dpi=dpi, bbox_inches="tight")
    logger.info(f"Saved comparison plot to {output_path}")
    plt.close(fig)
