"""Resolve a shared link into a game title and an image.

Recognized links:
- Steam store / community app pages: the title comes from the URL slug
  (``/app/620/Portal_2/`` → "Portal 2") and the image is the store header,
  looked up through the Steam ``appdetails`` API with a CDN fallback.
- YouTube videos: the image is the video thumbnail; there is no title, so
  the caller has to supply one.

Anything else resolves to None and the caller must provide both fields.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import StrEnum
from urllib.parse import unquote

import httpx

logger = logging.getLogger(__name__)

STEAM_PREFIXES = ("https://store.steampowered.com/", "https://steamcommunity.com/app/")
YOUTUBE_PREFIXES = (
    "https://www.youtube.com/",
    "https://youtube.com/",
    "https://m.youtube.com/",
    "https://youtu.be/",
)

_STEAM_APP_ID = re.compile(r"/app/(\d+)")
_STEAM_SLUG = re.compile(r"/app/\d+/([^/?#]+)")
_YOUTUBE_ID = re.compile(r"(?:youtube\.com/(?:watch\?v=|embed/|shorts/)|youtu\.be/)([\w-]+)")

STEAM_CDN_HEADER = "https://cdn.akamai.steamstatic.com/steam/apps/{app_id}/header.jpg"
YOUTUBE_THUMBNAIL = "https://img.youtube.com/vi/{video_id}/{quality}.jpg"


class LinkKind(StrEnum):
    STEAM = "steam"
    YOUTUBE = "youtube"


@dataclass(frozen=True)
class ResolvedLink:
    kind: LinkKind
    title: str | None
    image_url: str | None


def is_steam_url(url: str) -> bool:
    return url.startswith(STEAM_PREFIXES)


def is_youtube_url(url: str) -> bool:
    return url.startswith(YOUTUBE_PREFIXES)


def steam_app_id(url: str) -> str | None:
    match = _STEAM_APP_ID.search(url)
    return match.group(1) if match else None


def steam_app_name(url: str) -> str | None:
    match = _STEAM_SLUG.search(url)
    if not match:
        return None
    return unquote(match.group(1)).replace("_", " ").strip() or None


def youtube_video_id(url: str) -> str | None:
    match = _YOUTUBE_ID.search(url)
    return match.group(1) if match else None


def youtube_thumbnail(video_id: str, quality: str = "maxresdefault") -> str:
    return YOUTUBE_THUMBNAIL.format(video_id=video_id, quality=quality)


class IdentityResolver:
    """Link → (title, image) lookups. Only Steam needs a network call."""

    def __init__(self, client: httpx.AsyncClient, steam_api_base: str) -> None:
        self.client = client
        self.steam_api_base = steam_api_base.rstrip("/")

    async def aclose(self) -> None:
        await self.client.aclose()

    async def resolve(self, url: str) -> ResolvedLink | None:
        if is_steam_url(url):
            app_id = steam_app_id(url)
            if app_id is None:
                return ResolvedLink(LinkKind.STEAM, steam_app_name(url), None)
            details = await self._steam_app_details(app_id)
            title = steam_app_name(url) or details.get("name")
            image = details.get("header_image") or STEAM_CDN_HEADER.format(app_id=app_id)
            return ResolvedLink(LinkKind.STEAM, title, image)

        if is_youtube_url(url):
            video_id = youtube_video_id(url)
            image = youtube_thumbnail(video_id) if video_id else None
            return ResolvedLink(LinkKind.YOUTUBE, None, image)

        return None

    async def _steam_app_details(self, app_id: str) -> dict:
        """The ``data`` block of Steam's appdetails response, or {} on any failure."""
        try:
            resp = await self.client.get(
                f"{self.steam_api_base}/appdetails", params={"appids": app_id}
            )
            resp.raise_for_status()
            entry = resp.json().get(app_id) or {}
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("steam_appdetails_failed app_id=%s error=%s", app_id, exc)
            return {}
        if not entry.get("success"):
            return {}
        return entry.get("data") or {}
