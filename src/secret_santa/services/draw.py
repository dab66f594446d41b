"""Draw orchestration: load a group's participants, match them and commit."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from secret_santa.core.settings import settings
from secret_santa.models import Exclusion, Group, Participant
from secret_santa.services.matcher import Assignment, draw_assignment

logger = logging.getLogger(__name__)


class DrawError(Exception):
    """Base class for draw failures; ``reason`` is a stable code for clients."""

    reason = "draw_failed"


class GroupNotFoundError(DrawError):
    reason = "group_not_found"


class AlreadyDrawnError(DrawError):
    reason = "already_drawn"


class NotEnoughParticipantsError(DrawError):
    reason = "not_enough_participants"


class NoFeasibleAssignmentError(DrawError):
    """No assignment satisfies the exclusions within the attempt budget."""

    reason = "no_feasible_assignment"


class DrawService:
    """Service running the one-time draw for a group."""

    def __init__(
        self,
        max_attempts: int | None = None,
        time_budget_seconds: float | None = None,
        min_participants: int | None = None,
    ) -> None:
        self.max_attempts = max_attempts or settings.draw_max_attempts
        self.time_budget_seconds = (
            time_budget_seconds
            if time_budget_seconds is not None
            else settings.draw_time_budget_seconds
        )
        self.min_participants = min_participants or settings.min_participants

    def draw(self, db: Session, group_id: uuid.UUID) -> Assignment:
        """Compute and persist the assignment for ``group_id``.

        The giftee writes and the ``is_drawn`` flip share one transaction. The
        flip is a conditional update, so a concurrent draw that committed first
        turns this one into :class:`AlreadyDrawnError` and nothing is written.

        Raises:
            GroupNotFoundError: The group does not exist
            AlreadyDrawnError: The draw was already performed
            NotEnoughParticipantsError: Fewer participants than the minimum
            NoFeasibleAssignmentError: The exclusions leave no valid assignment
        """
        group = db.get(Group, group_id)
        if group is None:
            raise GroupNotFoundError("Group not found")
        if group.is_drawn:
            raise AlreadyDrawnError("Names already drawn")

        participants = (
            db.execute(
                select(Participant)
                .where(Participant.group_id == group_id)
                .order_by(Participant.created_at, Participant.id)
            )
            .scalars()
            .all()
        )
        if len(participants) < self.min_participants:
            raise NotEnoughParticipantsError(
                f"Need at least {self.min_participants} participants to draw"
            )

        exclusions = db.execute(
            select(Exclusion.participant_a_id, Exclusion.participant_b_id).where(
                Exclusion.group_id == group_id
            )
        ).all()

        result = draw_assignment(
            [participant.id for participant in participants],
            [(row[0], row[1]) for row in exclusions],
            max_attempts=self.max_attempts,
            time_budget_seconds=self.time_budget_seconds,
        )
        if result.assignment is None:
            logger.info(
                "Draw for group %s infeasible after %d attempts (%d exclusions)",
                group_id,
                result.attempts,
                len(exclusions),
            )
            raise NoFeasibleAssignmentError(
                "Cannot find a valid assignment with the current exclusions. "
                "Try removing some exclusions."
            )

        try:
            flipped = db.execute(
                update(Group)
                .where(Group.id == group_id, Group.is_drawn == False)  # noqa: E712
                .values(is_drawn=True)
                .execution_options(synchronize_session=False)
            )
            if flipped.rowcount != 1:
                db.rollback()
                raise AlreadyDrawnError("Names already drawn")

            by_id = {participant.id: participant for participant in participants}
            for giver_id, receiver_id in result.assignment.items():
                by_id[giver_id].giftee_id = receiver_id
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.error("Failed to persist draw for group %s", group_id, exc_info=True)
            raise

        db.refresh(group)
        logger.info(
            "Draw committed for group %s: %d participants, %d attempts",
            group_id,
            len(participants),
            result.attempts,
        )
        return result.assignment
