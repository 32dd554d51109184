"""
Derived Event Detection

Compares the previous and incoming round phase, bomb state and score to
decide which discrete events an update implies. Kept free of locking and I/O
so the tracker can call it inside its critical section.
"""

from __future__ import annotations

from enum import Enum

from gsitrack.models import BombState, RoundPhase, WinCondition


class Transition(Enum):
    ROUND_BEGIN = "round_begin"
    ROUND_END = "round_end"
    BOMB_PLANTED = "bomb_planted"
    BOMB_DEFUSED = "bomb_defused"
    BOMB_EXPLODED = "bomb_exploded"


_BOMB_TRANSITIONS = {
    BombState.PLANTED: Transition.BOMB_PLANTED,
    BombState.DEFUSED: Transition.BOMB_DEFUSED,
    BombState.EXPLODED: Transition.BOMB_EXPLODED,
}


def phase_transition(previous: RoundPhase, current: RoundPhase) -> Transition | None:
    """Round-begin on entry into LIVE, round-end on LIVE -> OVER."""
    if current == RoundPhase.LIVE and previous != RoundPhase.LIVE:
        return Transition.ROUND_BEGIN
    if previous == RoundPhase.LIVE and current == RoundPhase.OVER:
        return Transition.ROUND_END
    return None


def bomb_transition(previous: BombState, current: BombState) -> Transition | None:
    """Fires once on entry into PLANTED, DEFUSED or EXPLODED."""
    if current == previous:
        return None
    return _BOMB_TRANSITIONS.get(current)


def derive_transitions(
    previous_phase: RoundPhase,
    current_phase: RoundPhase,
    previous_bomb: BombState,
    current_bomb: BombState,
) -> list[Transition]:
    """
    List the transitions implied by one update, in handler order.

    Round transitions come before bomb transitions so the round outcome is
    decided on the score at the moment of the phase change.
    """
    transitions = []
    phase = phase_transition(previous_phase, current_phase)
    if phase is not None:
        transitions.append(phase)
    bomb = bomb_transition(previous_bomb, current_bomb)
    if bomb is not None:
        transitions.append(bomb)
    return transitions


def determine_winner(
    previous_t: int, previous_ct: int, current_t: int, current_ct: int
) -> str | None:
    """
    Attribute a round win from a score delta.

    Returns "T" or "CT" when exactly one side's score went up, None otherwise.
    """
    t_up = current_t > previous_t
    ct_up = current_ct > previous_ct
    if t_up and not ct_up:
        return "T"
    if ct_up and not t_up:
        return "CT"
    return None


def infer_win_condition(bomb_state: BombState) -> WinCondition:
    if bomb_state in (BombState.EXPLODED, BombState.DEFUSED):
        return WinCondition.BOMB
    return WinCondition.UNKNOWN
