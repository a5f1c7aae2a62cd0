"""
Maintenance API router.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_operator
from ..jobs import run_maintenance


router = APIRouter(tags=["maintenance"], dependencies=[Depends(require_operator)])


@router.post("/sweep")
def sweep_now(db: Session = Depends(get_db)):
    """Run the liveness sweep and command expiry immediately."""
    return run_maintenance(db).as_dict()
