import logging

from fastmcp import FastMCP

from cities_collective.models.city import City, CityUpdate
from cities_collective.server import get_db
from cities_collective.tools.error_messages import safe_tool_wrapper

logger = logging.getLogger(__name__)


def _format_city(idx: int | None, city: City) -> str:
    """Format a single city card for display."""
    prefix = f"{idx}. " if idx is not None else ""
    by = f" by {city.username}" if city.username else ""
    lines = [f"{prefix}{city.city_name} (#{city.id}){by}"]

    parts = [f"Population: {city.population:,}"]
    if city.map_name:
        parts.append(f"Map: {city.map_name}")
    if city.theme:
        parts.append(f"Theme: {city.theme}")
    lines.append(f"   {' | '.join(parts)}")
    lines.append(
        f"   {city.like_count} likes, {city.favorite_count} favorites, "
        f"{city.comment_count} comments"
    )
    return "\n".join(lines)


def _format_list(title: str, cities: list[City]) -> str:
    if not cities:
        return f"{title}: no cities found."
    body = "\n".join(_format_city(i, c) for i, c in enumerate(cities, 1))
    return f"{title}:\n{body}"


def register_city_tools(mcp: FastMCP) -> None:
    """Register city browsing and editing tools on the MCP server."""

    @mcp.tool
    async def get_city(city_id: int) -> str:
        """Show a city card with its creator, map and community counts.

        Args:
            city_id: ID of the city.
        """

        async def _run() -> str:
            city = await get_db().get_city_by_id(city_id)
            if city is None:
                return f"City {city_id} not found."
            text = _format_city(None, city)
            if city.description:
                text += f"\n   {city.description}"
            return text

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def search_cities(query: str = "", limit: int = 12, offset: int = 0) -> str:
        """Search cities by city name, map name or creator username.

        Args:
            query: Words to match; every word must match one of the fields.
            limit: Maximum results to return.
            offset: Number of results to skip (for paging).
        """

        async def _run() -> str:
            cities = await get_db().search_cities(query, limit=limit, offset=offset)
            title = f"Cities matching '{query}'" if query.strip() else "All cities"
            return _format_list(title, cities)

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def recent_cities(limit: int = 12) -> str:
        """List the most recently uploaded cities."""

        async def _run() -> str:
            return _format_list("Recent cities", await get_db().get_recent_cities(limit))

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def popular_cities(limit: int = 12) -> str:
        """List the most liked cities."""

        async def _run() -> str:
            return _format_list("Popular cities", await get_db().get_popular_cities(limit))

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def update_city(
        city_id: int,
        city_name: str | None = None,
        map_name: str | None = None,
        theme: str | None = None,
        description: str | None = None,
    ) -> str:
        """Edit a city's details. Omitted fields are left unchanged.

        Args:
            city_id: ID of the city to edit.
            city_name: New city name.
            map_name: New map name.
            theme: New theme.
            description: New description.

        Returns:
            The updated city card.
        """

        async def _run() -> str:
            update = CityUpdate(
                city_name=city_name,
                map_name=map_name,
                theme=theme,
                description=description,
            )
            city = await get_db().update_city(city_id, update)
            logger.info("Updated city %d", city_id)
            return f"Updated city.\n{_format_city(None, city)}"

        return await safe_tool_wrapper(_run)
