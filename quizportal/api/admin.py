"""Admin routes for portal-wide switches."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quizportal.api.deps import Principal, get_maintenance_cache, require_admin
from quizportal.db.session import get_db
from quizportal.schemas.admin import MaintenanceSetting
from quizportal.services.maintenance import (
    MaintenanceModeCache,
    read_maintenance_flag,
    write_maintenance_flag,
)

router = APIRouter()


@router.get("/settings/maintenance", response_model=MaintenanceSetting)
def get_maintenance(
    _admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Current stored value, bypassing the cache."""
    return MaintenanceSetting(enabled=read_maintenance_flag(db))


@router.put("/settings/maintenance", response_model=MaintenanceSetting)
def set_maintenance(
    body: MaintenanceSetting,
    _admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    cache: MaintenanceModeCache = Depends(get_maintenance_cache),
):
    """Toggle maintenance mode; takes effect immediately in this process."""
    write_maintenance_flag(db, body.enabled)
    cache.invalidate()
    return MaintenanceSetting(enabled=body.enabled)
