from fastmcp import FastMCP

from cities_collective.server import get_db
from cities_collective.tools.error_messages import safe_tool_wrapper


def register_user_tools(mcp: FastMCP) -> None:
    """Register user profile tools on the MCP server."""

    @mcp.tool
    async def user_profile(user_id: int) -> str:
        """Show a user's profile and the cities they have uploaded.

        Args:
            user_id: ID of the user.
        """

        async def _run() -> str:
            db = get_db()
            user = await db.get_user_by_id(user_id)
            if user is None:
                return f"User {user_id} not found."
            count = await db.get_city_count_by_user(user_id)
            lines = [f"{user.name or user.username} (@{user.username})", f"Cities: {count}"]
            for city in await db.get_cities_by_user(user_id):
                lines.append(f"- {city.city_name} (#{city.id}), pop. {city.population:,}")
            return "\n".join(lines)

        return await safe_tool_wrapper(_run)
