"""Max-per-bucket downsampling of traffic time series for plotting."""

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class SeriesPoint:
    time: float
    value: float


def downsample(times: Sequence[float], values: Sequence[float], target_points: int) -> List[SeriesPoint]:
    """
    Reduce a (time, value) series to `target_points` samples.

    First and last samples are kept verbatim. The interior is split into
    `target_points - 2` contiguous index buckets and each bucket reports its
    maximum sample, so congestion spikes survive. This biases the curve
    upwards compared to mean downsampling. Ties go to the earliest sample.
    """
    if len(times) != len(values):
        raise ValueError(f"times and values differ in length ({len(times)} != {len(values)})")

    n = len(times)
    if n == 0:
        return []
    if n <= target_points:
        return [SeriesPoint(float(t), float(v)) for t, v in zip(times, values)]
    if target_points <= 2:
        raise ValueError(f"target_points must be greater than 2, got {target_points}")

    t = np.asarray(times, dtype=float)
    v = np.asarray(values, dtype=float)

    n_buckets = target_points - 2
    bucket_size = (n - 2) / n_buckets
    # real-valued boundaries floored to indices, offset past the first sample
    edges = 1 + np.floor(np.arange(n_buckets + 1) * bucket_size).astype(int)
    edges[-1] = n - 1

    picked = [0]
    for start, end in zip(edges[:-1], edges[1:]):
        # np.argmax returns the first occurrence on ties
        picked.append(start + int(np.argmax(v[start:end])))
    picked.append(n - 1)

    return [SeriesPoint(float(t[i]), float(v[i])) for i in picked]


def downsample_frame(df, time_col: str, value_col: str, target_points: int):
    """DataFrame wrapper around `downsample`, preserving column names."""
    ordered = df.sort_values(time_col, kind="stable")
    points = downsample(ordered[time_col].to_numpy(), ordered[value_col].to_numpy(), target_points)
    return pd.DataFrame(
        {time_col: [p.time for p in points], value_col: [p.value for p in points]}
    )
