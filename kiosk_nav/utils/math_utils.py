import math
from typing import Sequence


def euclidean_distance(p1: Sequence[float], p2: Sequence[float]) -> float:
    """
    Вычисляет евклидово расстояние между двумя точками одинаковой размерности.

    Args:
        p1: Первая точка (x, y, …).
        p2: Вторая точка (x, y, …).

    Returns:
        Евклидово расстояние.

    Raises:
        ValueError: если размерности точек отличаются.
    """
    if len(p1) != len(p2):
        raise ValueError("Points must have the same dimension")
    return math.sqrt(sum((a - b) ** 2 for a, b in zip(p1, p2)))
