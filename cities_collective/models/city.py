from datetime import datetime

from pydantic import BaseModel, ConfigDict


class City(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    user_id: int
    city_name: str
    map_name: str | None = None
    population: int = 0
    money: int = 0
    xp: int = 0
    theme: str | None = None
    game_mode: str | None = None
    description: str | None = None
    username: str | None = None
    like_count: int = 0
    favorite_count: int = 0
    comment_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CityUpdate(BaseModel):
    """Editable city fields. ``None`` leaves a field unchanged."""

    city_name: str | None = None
    map_name: str | None = None
    population: int | None = None
    money: int | None = None
    xp: int | None = None
    theme: str | None = None
    game_mode: str | None = None
    description: str | None = None
