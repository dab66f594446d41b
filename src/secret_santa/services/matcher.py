"""Constrained random matching for gift-exchange draws.

The draw is a derangement (nobody gives to themselves) that also avoids every
excluded pair in both directions. Candidates are produced by rejection
sampling: shuffle, validate, retry, up to a fixed number of attempts. When the
budget runs out the result is reported as infeasible instead of looping.
"""

from __future__ import annotations

import random
import time
import uuid
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

DEFAULT_MAX_ATTEMPTS = 10_000
MIN_PARTICIPANTS = 3

Assignment = dict[uuid.UUID, uuid.UUID]
ForbiddenEdges = frozenset[tuple[uuid.UUID, uuid.UUID]]


@dataclass(frozen=True)
class MatchResult:
    """Outcome of a draw attempt.

    ``assignment`` maps giver -> receiver, or is ``None`` when no valid
    assignment was found within the attempt budget.
    """

    assignment: Assignment | None
    attempts: int

    @property
    def feasible(self) -> bool:
        return self.assignment is not None


def build_forbidden_edges(
    exclusions: Iterable[tuple[uuid.UUID, uuid.UUID]],
) -> ForbiddenEdges:
    """Expand unordered exclusion pairs into directed forbidden edges."""
    edges: set[tuple[uuid.UUID, uuid.UUID]] = set()
    for first, second in exclusions:
        edges.add((first, second))
        edges.add((second, first))
    return frozenset(edges)


def is_valid_assignment(
    participants: Sequence[uuid.UUID],
    assignment: Mapping[uuid.UUID, uuid.UUID],
    forbidden: ForbiddenEdges,
) -> bool:
    """Check bijection, absence of fixed points and of forbidden edges."""
    members = set(participants)
    if set(assignment) != members or set(assignment.values()) != members:
        return False
    if len(set(assignment.values())) != len(assignment):
        return False
    return all(
        giver != receiver and (giver, receiver) not in forbidden
        for giver, receiver in assignment.items()
    )


def _validate_input(
    participants: Sequence[uuid.UUID],
    exclusions: Sequence[tuple[uuid.UUID, uuid.UUID]],
) -> None:
    if len(participants) < MIN_PARTICIPANTS:
        raise ValueError(f"At least {MIN_PARTICIPANTS} participants are required")
    members = set(participants)
    if len(members) != len(participants):
        raise ValueError("Participant identifiers must be unique")
    for first, second in exclusions:
        if first == second:
            raise ValueError("An exclusion must reference two different participants")
        if first not in members or second not in members:
            raise ValueError("Exclusions may only reference draw participants")


def _shuffle(items: list[uuid.UUID], rng: random.Random) -> None:
    # Fisher-Yates, walking down from the last position
    for i in range(len(items) - 1, 0, -1):
        j = rng.randrange(i + 1)
        items[i], items[j] = items[j], items[i]


def draw_assignment(
    participants: Sequence[uuid.UUID],
    exclusions: Sequence[tuple[uuid.UUID, uuid.UUID]] = (),
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    rng: random.Random | None = None,
    time_budget_seconds: float | None = None,
) -> MatchResult:
    """Draw a random giver -> receiver assignment.

    Args:
        participants: Participant ids; order defines the giver positions.
        exclusions: Unordered pairs that may not be matched in either direction.
        max_attempts: Upper bound on shuffles before giving up.
        rng: Random source. Defaults to ``random.SystemRandom`` (OS entropy),
            so every attempt is independent and unpredictable.
        time_budget_seconds: Optional wall-clock cap on the search.

    Returns:
        A :class:`MatchResult`; ``feasible`` is False when the budget ran out.

    Raises:
        ValueError: If fewer than three participants are given, ids repeat, or
            an exclusion is self-referential or names a non-participant.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be positive")
    _validate_input(participants, exclusions)

    source = rng if rng is not None else random.SystemRandom()
    forbidden = build_forbidden_edges(exclusions)
    givers = list(participants)
    deadline = (
        time.monotonic() + time_budget_seconds if time_budget_seconds is not None else None
    )

    attempts = 0
    while attempts < max_attempts:
        attempts += 1
        receivers = list(givers)
        _shuffle(receivers, source)

        if all(
            giver != receiver and (giver, receiver) not in forbidden
            for giver, receiver in zip(givers, receivers)
        ):
            return MatchResult(assignment=dict(zip(givers, receivers)), attempts=attempts)

        if deadline is not None and time.monotonic() >= deadline:
            break

    return MatchResult(assignment=None, attempts=attempts)
