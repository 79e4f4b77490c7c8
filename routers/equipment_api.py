from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import crud
from dependencies import get_caller, get_db
from models import Caller, Equipment

router = APIRouter()


@router.get("/equipment", response_model=list[Equipment])
def list_equipment_api(
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    return crud.list_active_equipment(db)


@router.get("/equipment/{equipment_id}", response_model=Equipment)
def get_equipment_api(
    equipment_id: str,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    equipment = crud.get_equipment(db, equipment_id)
    if not equipment:
        raise HTTPException(status_code=404, detail="equipment not found")
    return equipment
