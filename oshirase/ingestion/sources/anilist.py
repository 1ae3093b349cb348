"""
AniList Source
==============

Fetches the list owner and their current anime and manga lists from the
AniList GraphQL API.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from oshirase.core.errors import SourceError
from oshirase.core.schema import Media, MediaLists, User
from oshirase.db.cache import get_cache_key
from oshirase.ingestion.http import HttpClient
from oshirase.ingestion.sources.base import BaseSource, ExtractOptions

logger = logging.getLogger(__name__)

VIEWER_QUERY = """
query {
    Viewer {
        id
        name
    }
}
"""

USER_QUERY = """
query($userId: Int) {
    User(id: $userId) {
        id
        name
    }
}
"""

_ENTRY_FIELDS = """
        lists {
            name
            status
            entries {
                media {
                    id
                    type
                    format
                    season
                    seasonYear
                    title {
                        romaji
                        english
                    }
                    coverImage {
                        large
                    }
                    episodes
                }
                status
                score
                progress
            }
        }
"""

LISTS_QUERY = f"""
query($userId: Int) {{
    anime: MediaListCollection(userId: $userId, type: ANIME, status: CURRENT) {{{_ENTRY_FIELDS}    }}
    manga: MediaListCollection(userId: $userId, type: MANGA, status: CURRENT) {{{_ENTRY_FIELDS}    }}
}}
"""


class AniListData(BaseModel):
    """What the AniList source produces (and caches)."""

    user: User
    lists: MediaLists = Field(default_factory=MediaLists)


def parse_entry(entry: dict[str, Any]) -> Media:
    """
    Convert one MediaList entry into a Media record.

    Args:
        entry: GraphQL MediaList object with a nested media object

    Returns:
        Parsed media entry
    """
    media = entry.get("media") or {}
    title = media.get("title") or {}
    cover = media.get("coverImage") or {}
    return Media(
        media_id=media["id"],
        media_type=media.get("type"),
        status=entry.get("status"),
        format=media.get("format"),
        season=media.get("season"),
        season_year=media.get("seasonYear"),
        title=title.get("romaji"),
        english_title=title.get("english"),
        image=cover.get("large"),
        episodes=media.get("episodes"),
        score=entry.get("score"),
        progress=entry.get("progress"),
    )


def parse_collection(collection: dict[str, Any] | None) -> list[Media]:
    """
    Flatten a MediaListCollection into media entries.

    An entry can appear in several custom lists; the first occurrence wins.
    """
    if not collection:
        return []

    seen: set[int] = set()
    result: list[Media] = []
    for media_list in collection.get("lists") or []:
        for entry in media_list.get("entries") or []:
            media = parse_entry(entry)
            if media.media_id in seen:
                continue
            seen.add(media.media_id)
            result.append(media)
    return result


class AniListSource(BaseSource[AniListData]):
    """
    AniList GraphQL source.

    Results are cached for `anilist_api.ttl` seconds, keyed by user. Skipping
    the cache forces a refetch that replaces the cached value.
    """

    SOURCE_NAME = "anilist_api"

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        token = self.config.anilist_api.access_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _query(
        self, client: HttpClient, query: str, variables: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        body = await client.post_json(self.config.anilist_api.url, payload)
        if not isinstance(body, dict):
            raise SourceError(self.SOURCE_NAME, "Unexpected response shape")
        if body.get("errors"):
            messages = "; ".join(str(e.get("message", e)) for e in body["errors"])
            raise SourceError(self.SOURCE_NAME, f"GraphQL errors: {messages}")
        data = body.get("data")
        if not isinstance(data, dict):
            raise SourceError(self.SOURCE_NAME, "Response has no data")
        return data

    async def fetch_user(self, client: HttpClient, user_id: int | None = None) -> User:
        """
        Fetch the list owner.

        Args:
            client: HTTP client
            user_id: AniList user id, or None for the authenticated viewer

        Returns:
            The user
        """
        if user_id is None:
            data = await self._query(client, VIEWER_QUERY)
            raw = data.get("Viewer")
        else:
            data = await self._query(client, USER_QUERY, {"userId": user_id})
            raw = data.get("User")

        if not raw:
            raise SourceError(self.SOURCE_NAME, "Could not get user ID.")
        try:
            return User.model_validate(raw)
        except ValidationError as e:
            raise SourceError(self.SOURCE_NAME, f"Invalid user: {e}") from e

    async def fetch_lists(self, client: HttpClient, user_id: int) -> MediaLists:
        """
        Fetch the user's current anime and manga lists.

        Args:
            client: HTTP client
            user_id: AniList user id

        Returns:
            Current anime and manga entries
        """
        data = await self._query(client, LISTS_QUERY, {"userId": user_id})
        try:
            return MediaLists(
                anime=parse_collection(data.get("anime")),
                manga=parse_collection(data.get("manga")),
            )
        except (KeyError, TypeError, ValidationError) as e:
            raise SourceError(self.SOURCE_NAME, f"Invalid list entry: {e}") from e

    async def extract(self, options: ExtractOptions | None = None) -> AniListData:
        options = options or ExtractOptions()
        cache_key = get_cache_key(self.SOURCE_NAME, "extract", options.user_id)

        if self.cache is not None:
            cached = await self.cache.get_cached(cache_key, AniListData, bypass=options.skip_cache)
            if cached is not None:
                return cached

        async with self.create_client(headers=self._headers()) as client:
            user = await self.fetch_user(client, options.user_id)
            lists = await self.fetch_lists(client, user.id)

        logger.info(
            f"Fetched AniList lists for {user.name}: "
            f"{len(lists.anime)} anime, {len(lists.manga)} manga"
        )
        data = AniListData(user=user, lists=lists)

        if self.cache is not None:
            await self.cache.cache_value_expire(cache_key, data, self.config.anilist_api.ttl)
        return data
