import logging

from fastmcp import FastMCP

from cities_collective.server import get_db
from cities_collective.tools.error_messages import safe_tool_wrapper

logger = logging.getLogger(__name__)


def register_community_tools(mcp: FastMCP) -> None:
    """Register likes, favorites, comments and community stats tools."""

    @mcp.tool
    async def like_city(city_id: int, user_id: int) -> str:
        """Like a city, or remove the like if already given.

        Args:
            city_id: ID of the city.
            user_id: ID of the user liking it.
        """

        async def _run() -> str:
            liked = await get_db().toggle_like(city_id, user_id)
            return f"Liked city {city_id}." if liked else f"Removed like from city {city_id}."

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def favorite_city(city_id: int, user_id: int) -> str:
        """Add a city to a user's favorites, or remove it if already there.

        Args:
            city_id: ID of the city.
            user_id: ID of the user.
        """

        async def _run() -> str:
            added = await get_db().toggle_favorite(city_id, user_id)
            if added:
                return f"Added city {city_id} to favorites."
            return f"Removed city {city_id} from favorites."

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def add_comment(city_id: int, user_id: int, content: str) -> str:
        """Post a comment on a city.

        Args:
            city_id: ID of the city.
            user_id: ID of the commenting user.
            content: Comment text.
        """

        async def _run() -> str:
            comment = await get_db().add_comment(city_id, user_id, content)
            return f"Comment #{comment.id} posted on city {city_id}."

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def list_comments(city_id: int, limit: int = 20) -> str:
        """Show the latest comments on a city."""

        async def _run() -> str:
            comments = await get_db().get_comments(city_id, limit)
            if not comments:
                return f"No comments on city {city_id} yet."
            lines = [f"Comments on city {city_id}:"]
            for c in comments:
                lines.append(f"- {c.username or f'user {c.user_id}'}: {c.content}")
            return "\n".join(lines)

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def community_stats() -> str:
        """Show totals across the whole community."""

        async def _run() -> str:
            stats = await get_db().get_community_stats()
            return (
                f"Cities: {stats.total_cities}\n"
                f"Users: {stats.total_users}\n"
                f"Total population: {stats.total_population:,}\n"
                f"Likes: {stats.total_likes} | Favorites: {stats.total_favorites} "
                f"| Comments: {stats.total_comments}"
            )

        return await safe_tool_wrapper(_run)
