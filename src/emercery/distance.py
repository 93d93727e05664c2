"""Planar distance between two coordinates, as the simulation scores it."""

from __future__ import annotations

import math


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Straight-line distance in coordinate units (not kilometres)."""
    return math.hypot(lat2 - lat1, lon2 - lon1)
