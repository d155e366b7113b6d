"""Plotting helpers for solver convergence histories."""

from __future__ import annotations

from pathlib import Path

import numpy as np

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

from core.types import History  # noqa: E402

__all__ = ["METRICS", "plot_history"]

METRICS = ("value", "grad_norm", "step_size")


def plot_history(
    history: History,
    metric: str,
    out_path: Path,
    *,
    title: str | None = None,
    log_scale: bool | None = None,
) -> None:
    """Plot one metric of a solve history per iteration.

    Args:
        history: Per-iteration records of a solve.
        metric: One of "value", "grad_norm", "step_size".
        out_path: Output PNG path.
        title: Optional plot title.
        log_scale: Log y-axis; defaults to True for grad_norm and step_size.

    Raises:
        ValueError: If the metric is unknown.
    """
    if metric not in METRICS:
        raise ValueError(f"Unknown metric '{metric}'. Available: {', '.join(METRICS)}")
    if len(history) == 0:
        return

    series = {
        "value": history.values,
        "grad_norm": history.grad_norms,
        "step_size": history.step_sizes,
    }[metric]()
    y = np.asarray(series, dtype=np.float64)
    x = np.asarray([r.iteration for r in history.records])
    if log_scale is None:
        log_scale = metric != "value"
    mask = np.isfinite(y) & (y > 0) if log_scale else np.isfinite(y)
    if not np.any(mask):
        return

    out_path.parent.mkdir(parents=True, exist_ok=True)
    plt.figure(figsize=(8, 4.5))
    plt.plot(x[mask], y[mask], marker="o", markersize=3)
    plt.xlabel("iteration")
    plt.ylabel(metric)
    if log_scale:
        plt.yscale("log")
    if title:
        plt.title(title)
    plt.tight_layout()
    plt.savefig(out_path)
    plt.close()
