# embeds.py
# Unwraps embed pages that are not images themselves into direct GIF links.
# Only tenor and imgur are handled, anything else stays an invalid content type.

import re
from typing import Optional

from logger import get_logger
from utils.errors import InvalidContentType
from utils.fetch import ByteFetcher

log = get_logger()

# https://tenor.com/view/cat-jam-gif-18110512, locale prefixes like /de/view/ included
TENOR_VIEW_REGEX = re.compile(r"^https?://(?:www\.)?tenor\.com/(?:[a-z]{2}(?:-[a-z]{2})?/)?view/\S+$", re.IGNORECASE)
# https://media.tenor.com/<hash>/<name>.gif, older pages still point at c.tenor.com
TENOR_ASSET_REGEX = re.compile(r"https://(?:media\d*|c)\.tenor\.com/[A-Za-z0-9_-]+/[^\"'\s<>]+?\.gif")
# https://imgur.com/<id>, the id is all we need
IMGUR_PAGE_REGEX = re.compile(r"^https?://(?:www\.|m\.)?imgur\.com/([A-Za-z0-9]{5,10})/?(?:[?#]\S*)?$")


def is_embed_page(url: Optional[str]) -> bool:
    if not url:
        return False
    return bool(TENOR_VIEW_REGEX.match(url) or IMGUR_PAGE_REGEX.match(url))


def imgur_direct_url(url: str) -> Optional[str]:
    match = IMGUR_PAGE_REGEX.match(url)
    if not match:
        return None
    return f"https://i.imgur.com/{match.group(1)}.gif"


def tenor_asset_url(page: str) -> Optional[str]:
    """First tenor CDN gif linked from a view page body."""
    match = TENOR_ASSET_REGEX.search(page)
    return match.group(0) if match else None


async def unwrap_embed(fetcher: ByteFetcher, url: str) -> str:
    """
    Turn an embed page url into the url of the actual gif.
    Raises InvalidContentType when the url is not a known page or the page has no asset.
    """
    if TENOR_VIEW_REGEX.match(url):
        page = await fetcher.get_text(url)
        asset = tenor_asset_url(page)
        if asset is None:
            log.warningtrace("No tenor asset found on %s", url)
            raise InvalidContentType("text/html")
        log.trace("Unwrapped tenor page %s -> %s", url, asset)
        return asset

    direct = imgur_direct_url(url)
    if direct is not None:
        log.trace("Unwrapped imgur page %s -> %s", url, direct)
        return direct

    raise InvalidContentType()
