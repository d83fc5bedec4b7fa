"""
Tour playback as pure reducers.

Every transition takes the current ``TourState`` and returns the next
state plus a list of effects for the BookmarkManager to carry out
(navigate, arm or clear the auto-advance timer, announce the end). No
reducer touches a clock, a map or a timer, so a whole tour can be stepped
through in a test without waiting.

Idle -> Playing(0) -> next/previous -> Playing(i +/- 1) -> ... -> Idle

Each navigation gets a fresh ``step`` token. An arrival or timer reported
with an older token belongs to a superseded step and is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Iterable, List, Optional, Tuple, Union

BookmarkExists = Callable[[str], bool]


@dataclass(frozen=True)
class TourState:
    active: bool = False
    index: int = 0
    bookmark_ids: Tuple[str, ...] = ()
    timer_armed: bool = False
    step: int = 0

    @property
    def current_id(self) -> Optional[str]:
        if self.active and 0 <= self.index < len(self.bookmark_ids):
            return self.bookmark_ids[self.index]
        return None


# ============================================================================
# Effects
# ============================================================================


@dataclass(frozen=True)
class NavigateTo:
    bookmark_id: str
    index: int
    total: int
    step: int


@dataclass(frozen=True)
class ArmTimer:
    delay_ms: int
    step: int


@dataclass(frozen=True)
class ClearTimer:
    pass


@dataclass(frozen=True)
class TourEnded:
    pass


TourEffect = Union[NavigateTo, ArmTimer, ClearTimer, TourEnded]
Transition = Tuple[TourState, List[TourEffect]]


# ============================================================================
# Reducers
# ============================================================================


def _clear_if_armed(state: TourState) -> List[TourEffect]:
    return [ClearTimer()] if state.timer_armed else []


def _play(state: TourState, exists: BookmarkExists, effects: List[TourEffect]) -> Transition:
    """Navigate to the first known bookmark at or after ``state.index``, or stop."""
    index = state.index
    total = len(state.bookmark_ids)
    while index < total and not exists(state.bookmark_ids[index]):
        index += 1

    if not state.active or index >= total:
        stopped, stop_effects = stop(state)
        return stopped, effects + stop_effects

    step = state.step + 1
    playing = replace(state, index=index, timer_armed=False, step=step)
    effects.append(NavigateTo(state.bookmark_ids[index], index, total, step))
    return playing, effects


def start(state: TourState, bookmark_ids: Iterable[str], exists: BookmarkExists) -> Transition:
    """Begin a tour at index 0. An empty id list leaves the state untouched."""
    ids = tuple(bookmark_ids)
    if not ids:
        return state, []
    effects = _clear_if_armed(state)
    fresh = TourState(active=True, index=0, bookmark_ids=ids, step=state.step)
    return _play(fresh, exists, effects)


def next_step(state: TourState, exists: BookmarkExists) -> Transition:
    """Advance one bookmark; past the last one the tour stops."""
    if not state.active:
        return state, []
    effects = _clear_if_armed(state)
    return _play(replace(state, index=state.index + 1, timer_armed=False), exists, effects)


def previous_step(state: TourState, exists: BookmarkExists) -> Transition:
    """Go back one bookmark (index 0 replays the first)."""
    if not state.active:
        return state, []
    effects = _clear_if_armed(state)
    return _play(replace(state, index=max(0, state.index - 1), timer_armed=False), exists, effects)


def stop(state: TourState) -> Transition:
    """Back to idle. The step token moves on so pending arrivals are dropped."""
    effects = _clear_if_armed(state)
    if state.active:
        effects.append(TourEnded())
    return TourState(step=state.step + 1), effects


def arrived(state: TourState, step: int, advance_delay_ms: Optional[int]) -> Transition:
    """Navigation for ``step`` finished; arm auto-advance when the bookmark asks for it."""
    if not state.active or step != state.step or not advance_delay_ms:
        return state, []
    effects = _clear_if_armed(state)
    effects.append(ArmTimer(advance_delay_ms, state.step))
    return replace(state, timer_armed=True), effects


def toggle_pause(state: TourState, advance_delay_ms: Optional[int]) -> Transition:
    """Suspend or resume auto-advance. Camera moves already under way are not affected."""
    if state.timer_armed:
        return replace(state, timer_armed=False), [ClearTimer()]
    if state.active and advance_delay_ms:
        return replace(state, timer_armed=True), [ArmTimer(advance_delay_ms, state.step)]
    return state, []


def progress(state: TourState) -> dict[str, int]:
    return {"current": state.index, "total": len(state.bookmark_ids)}
