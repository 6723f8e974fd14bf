from datetime import datetime

from pydantic import BaseModel, ConfigDict


class Comment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    city_id: int
    user_id: int
    username: str | None = None
    content: str
    created_at: datetime | None = None


class CommunityStats(BaseModel):
    total_cities: int = 0
    total_users: int = 0
    total_likes: int = 0
    total_comments: int = 0
    total_favorites: int = 0
    total_population: int = 0
