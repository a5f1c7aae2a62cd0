"""
Commands API router.

Operators enqueue actuator commands here; devices pick them up by polling.
"""
import uuid
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_operator
from ..schemas.command import CommandCreateRequest, CommandResponse
from ..services import command_service


router = APIRouter(tags=["commands"], dependencies=[Depends(require_operator)])


@router.post("/", response_model=CommandResponse, status_code=status.HTTP_201_CREATED)
def enqueue_command(
    payload: CommandCreateRequest,
    db: Session = Depends(get_db),
):
    """
    Queue a command for an actuator.

    - **on** / **off**: no value
    - **set_value**: value between 0 and 100

    The actuator state is only updated once the device confirms execution.
    Unclaimed commands expire after `COMMAND_EXPIRY_SECONDS`.
    """
    return command_service.enqueue(db, payload.actuator_id, payload.command_type, payload.value)


@router.get("/{command_id}", response_model=CommandResponse)
def get_command(
    command_id: uuid.UUID,
    db: Session = Depends(get_db),
):
    """Get a single command and its lifecycle timestamps."""
    return command_service.get_command(db, command_id)
