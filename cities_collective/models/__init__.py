from cities_collective.models.city import City, CityUpdate
from cities_collective.models.community import Comment, CommunityStats
from cities_collective.models.user import User

__all__ = [
    "City",
    "CityUpdate",
    "Comment",
    "CommunityStats",
    "User",
]
