from datetime import datetime

from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    username: str
    email: str
    name: str | None = None
    is_admin: bool = False
    created_at: datetime | None = None
