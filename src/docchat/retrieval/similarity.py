"""Vector similarity helpers."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from docchat.errors import DimensionMismatchError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return ``dot(a, b) / (‖a‖·‖b‖)``.

    Vectors of different length raise :class:`DimensionMismatchError`; they
    are never truncated or padded.  A zero vector has similarity ``0.0``
    with everything.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(expected=len(a), actual=len(b))

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)
