"""Easing curves for camera transitions. Each maps t in [0, 1] to progress in [0, 1]."""

from __future__ import annotations

from typing import Callable, Dict, Optional

EasingFunction = Callable[[float], float]


def linear(t: float) -> float:
    return t


def ease_in(t: float) -> float:
    return t * t


def ease_out(t: float) -> float:
    return 1 - (1 - t) * (1 - t)


def ease_in_out(t: float) -> float:
    if t < 0.5:
        return 2 * t * t
    return 1 - (-2 * t + 2) ** 2 / 2


EASINGS: Dict[str, EasingFunction] = {
    "linear": linear,
    "ease-in": ease_in,
    "ease-out": ease_out,
    "ease-in-out": ease_in_out,
}


def get_easing(name: Optional[str]) -> Optional[EasingFunction]:
    """Easing function for ``name``; None when no easing is requested, linear when unknown."""
    if name is None:
        return None
    return EASINGS.get(name, linear)
