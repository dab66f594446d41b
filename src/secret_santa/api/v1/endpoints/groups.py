# src/secret_santa/api/v1/endpoints/groups.py
"""Group-related endpoints for the Secret Santa API."""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, HTTPException, Response, status
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from secret_santa.api.v1.dependencies import CurrentUserDep, SessionDep
from secret_santa.models import ChatMessage, Exclusion, Group, Participant, User
from secret_santa.schemas.group import (
    DrawResponse,
    GifteeResponse,
    GroupCreate,
    GroupDetailResponse,
    GroupJoin,
    GroupResponse,
    ParticipantResponse,
)
from secret_santa.services.draw import (
    DrawError,
    DrawService,
    GroupNotFoundError,
    NoFeasibleAssignmentError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/groups", tags=["groups"])


def get_group_or_404(db: Session, group_id: uuid.UUID) -> Group:
    group = db.get(Group, group_id)
    if group is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Group not found"
        )
    return group


def require_participant(db: Session, group_id: uuid.UUID, user: User) -> Participant:
    """Return the user's participant record or raise 403."""
    participant = db.execute(
        select(Participant).where(
            Participant.group_id == group_id,
            Participant.user_id == user.id,
        )
    ).scalar_one_or_none()
    if participant is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not a member of this group"
        )
    return participant


def require_owner(group: Group, user: User) -> None:
    if group.owner_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the group owner can do this"
        )


def _participant_response(participant: Participant) -> ParticipantResponse:
    return ParticipantResponse(
        id=participant.id,
        user_id=participant.user_id,
        name=participant.user.name,
        avatar_url=participant.user.avatar_url,
        joined_at=participant.created_at,
    )


def _detail_response(group: Group) -> GroupDetailResponse:
    summary = GroupResponse.model_validate(group)
    return GroupDetailResponse(
        **summary.model_dump(),
        participants=[_participant_response(p) for p in group.participants],
    )


def _add_participant(db: Session, group: Group, user: User) -> Participant:
    if group.is_drawn:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot join after the draw"
        )
    if db.execute(
        select(Participant.id).where(
            Participant.group_id == group.id,
            Participant.user_id == user.id,
        )
    ).first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Already a member of this group"
        )

    participant = Participant(group_id=group.id, user_id=user.id)
    db.add(participant)
    try:
        db.commit()
    except IntegrityError as err:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Already a member of this group"
        ) from err
    db.refresh(participant)
    logger.info("User %s joined group %s", user.id, group.id)
    return participant


@router.get("/", response_model=list[GroupResponse])
async def list_groups(current_user: CurrentUserDep, db: SessionDep) -> list[Group]:
    """List the groups the current user takes part in."""
    groups = db.execute(
        select(Group)
        .join(Participant, Participant.group_id == Group.id)
        .where(Participant.user_id == current_user.id)
        .order_by(Group.created_at.desc())
    ).scalars().all()
    return list(groups)


@router.post("/",
          response_model=GroupDetailResponse,
          status_code=status.HTTP_201_CREATED)
async def create_group(
    group_data: GroupCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> GroupDetailResponse:
    """Create a new group; the creator becomes its owner and first participant."""
    group = Group(
        name=group_data.name,
        description=group_data.description,
        avatar_url=group_data.avatar_url,
        budget=group_data.budget,
        event_date=group_data.event_date,
        owner_id=current_user.id,
    )
    db.add(group)
    db.flush()
    db.add(Participant(group_id=group.id, user_id=current_user.id))
    db.commit()
    db.refresh(group)
    logger.info("Group %s created by %s", group.id, current_user.id)
    return _detail_response(group)


@router.post("/join", response_model=GroupDetailResponse)
async def join_group_by_invite(
    join_data: GroupJoin,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> GroupDetailResponse:
    """Join a group using its invite code."""
    group = db.execute(
        select(Group).where(Group.invite_code == join_data.invite_code.strip().lower())
    ).scalar_one_or_none()
    if group is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invalid invite code"
        )
    _add_participant(db, group, current_user)
    db.refresh(group)
    return _detail_response(group)


@router.get("/{group_id}", response_model=GroupDetailResponse)
async def get_group(
    group_id: uuid.UUID,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> GroupDetailResponse:
    """Get a group with its participants. Members only."""
    group = get_group_or_404(db, group_id)
    require_participant(db, group_id, current_user)
    return _detail_response(group)


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group(
    group_id: uuid.UUID,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> Response:
    """Delete a group with its participants, exclusions and chat history."""
    group = get_group_or_404(db, group_id)
    require_owner(group, current_user)

    # Giftee edges point at sibling participants; clear them before deleting rows.
    db.execute(
        update(Participant)
        .where(Participant.group_id == group_id)
        .values(giftee_id=None)
    )
    db.execute(delete(ChatMessage).where(ChatMessage.group_id == group_id))
    db.execute(delete(Exclusion).where(Exclusion.group_id == group_id))
    db.execute(delete(Participant).where(Participant.group_id == group_id))
    db.execute(delete(Group).where(Group.id == group_id))
    db.commit()
    logger.info("Group %s deleted by %s", group_id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{group_id}/join", response_model=GroupDetailResponse)
async def join_group(
    group_id: uuid.UUID,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> GroupDetailResponse:
    """Join a group by id."""
    group = get_group_or_404(db, group_id)
    _add_participant(db, group, current_user)
    db.refresh(group)
    return _detail_response(group)


@router.post("/{group_id}/draw", response_model=DrawResponse)
def draw_names(
    group_id: uuid.UUID,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> DrawResponse:
    """Run the one-time draw for a group. Owner only.

    Declared sync so the matcher runs in the threadpool.
    """
    group = get_group_or_404(db, group_id)
    require_owner(group, current_user)

    try:
        assignment = DrawService().draw(db, group_id)
    except GroupNotFoundError as err:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(err)
        ) from err
    except NoFeasibleAssignmentError as err:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(err)
        ) from err
    except DrawError as err:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(err)
        ) from err

    return DrawResponse(
        group_id=group_id,
        participant_count=len(assignment),
        message="Names drawn successfully",
    )


@router.get("/{group_id}/my-giftee", response_model=GifteeResponse)
async def get_my_giftee(
    group_id: uuid.UUID,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> GifteeResponse:
    """Reveal the caller's giftee once the draw has been performed."""
    group = get_group_or_404(db, group_id)
    participant = require_participant(db, group_id, current_user)
    if not group.is_drawn:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Draw has not been performed yet"
        )

    giftee = db.get(Participant, participant.giftee_id) if participant.giftee_id else None
    if giftee is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No giftee assigned"
        )
    return GifteeResponse(
        participant_id=giftee.id,
        user_id=giftee.user_id,
        name=giftee.user.name,
        avatar_url=giftee.user.avatar_url,
    )
