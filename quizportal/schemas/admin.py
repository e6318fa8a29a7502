"""Admin portal-settings schemas."""

from pydantic import BaseModel


class MaintenanceSetting(BaseModel):
    """GET/PUT /api/admin/settings/maintenance"""

    enabled: bool
