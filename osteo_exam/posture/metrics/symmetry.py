from __future__ import annotations

import math
from typing import Optional

NAN = float("nan")


def compute_symmetry(left: Optional[float], right: Optional[float]) -> float:
    """Percentage closeness of a left/right pair: `100 * (1 - |l - r| / mean(l, r))` in [0, 100].

    NaN when either side is unavailable. A zero mean yields 100 for equal
    values and NaN otherwise.
    """
    if left is None or right is None:
        return NAN
    left_f, right_f = float(left), float(right)
    if not (math.isfinite(left_f) and math.isfinite(right_f)):
        return NAN
    average = abs((left_f + right_f) / 2.0)
    if average == 0.0:
        return 100.0 if left_f == right_f else NAN
    value = 100.0 * (1.0 - abs(left_f - right_f) / average)
    return min(100.0, max(0.0, value))


def overall_balance(shoulder_symmetry: float, hip_symmetry: float) -> float:
    if not (math.isfinite(shoulder_symmetry) and math.isfinite(hip_symmetry)):
        return NAN
    return (shoulder_symmetry + hip_symmetry) / 2.0
