import uuid
from datetime import datetime

from ninofi.common.schemas import CamelModel


class CheckInStatus(CamelModel):
    project_id: uuid.UUID
    user_id: uuid.UUID
    checked_in: bool
    check_in_id: uuid.UUID | None = None
    check_in_time: datetime | None = None
    check_out_time: datetime | None = None
    distance: float | None = None
    elapsed_seconds: int | None = None
    elapsed: str | None = None
