# src/secret_santa/api/v1/endpoints/exclusions.py
"""Exclusion management for a group's draw. Owner only."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, HTTPException, Response, status
from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from secret_santa.api.v1.dependencies import CurrentUserDep, SessionDep
from secret_santa.models import Exclusion, Group, Participant, User
from secret_santa.schemas.exclusion import ExclusionCreate, ExclusionResponse

from .groups import get_group_or_404, require_owner

router = APIRouter(prefix="/groups/{group_id}/exclusions", tags=["exclusions"])


def _owned_group(db: Session, group_id: uuid.UUID, user: User) -> Group:
    group = get_group_or_404(db, group_id)
    require_owner(group, user)
    return group


def _reject_after_draw(group: Group) -> None:
    if group.is_drawn:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Exclusions cannot change after the draw"
        )


@router.get("/", response_model=list[ExclusionResponse])
async def list_exclusions(
    group_id: uuid.UUID,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> list[Exclusion]:
    """List the group's exclusions."""
    _owned_group(db, group_id, current_user)
    exclusions = db.execute(
        select(Exclusion)
        .where(Exclusion.group_id == group_id)
        .order_by(Exclusion.created_at)
    ).scalars().all()
    return list(exclusions)


@router.post("/",
          response_model=ExclusionResponse,
          status_code=status.HTTP_201_CREATED)
async def create_exclusion(
    group_id: uuid.UUID,
    exclusion_data: ExclusionCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> Exclusion:
    """Forbid two participants from being matched with each other in either direction."""
    group = _owned_group(db, group_id, current_user)
    _reject_after_draw(group)

    a_id, b_id = exclusion_data.participant_a_id, exclusion_data.participant_b_id
    if a_id == b_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot exclude a participant from themselves"
        )

    members = db.execute(
        select(Participant.id).where(
            Participant.group_id == group_id,
            Participant.id.in_([a_id, b_id]),
        )
    ).scalars().all()
    if len(members) != 2:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Both participants must belong to this group"
        )

    existing = db.execute(
        select(Exclusion.id).where(
            Exclusion.group_id == group_id,
            or_(
                and_(Exclusion.participant_a_id == a_id, Exclusion.participant_b_id == b_id),
                and_(Exclusion.participant_a_id == b_id, Exclusion.participant_b_id == a_id),
            ),
        )
    ).first()
    if existing is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Exclusion already exists"
        )

    exclusion = Exclusion(group_id=group_id, participant_a_id=a_id, participant_b_id=b_id)
    db.add(exclusion)
    db.commit()
    db.refresh(exclusion)
    return exclusion


@router.delete("/{exclusion_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_exclusion(
    group_id: uuid.UUID,
    exclusion_id: uuid.UUID,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> Response:
    """Remove an exclusion before the draw."""
    group = _owned_group(db, group_id, current_user)
    _reject_after_draw(group)

    exclusion = db.get(Exclusion, exclusion_id)
    if exclusion is None or exclusion.group_id != group_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Exclusion not found"
        )
    db.delete(exclusion)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
