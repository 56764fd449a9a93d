"""Existence probe for person photographs hosted in the images repository."""

import logging
import uuid

import httpx

from config import FALLBACK_EXTENSIONS, NavigationConfig

logger = logging.getLogger("swipetree.tools.image_probe")

USER_AGENT = "SwipeTree/1.0 (Family Tree Navigator) httpx"


def artifact_name(person_id: str, extension: str = "jpg") -> str:
    """Deterministic file name for a person's photograph."""
    return f"{person_id}.{extension.lstrip('.')}"


class ImageProbe:
    """Checks whether a photograph exists for an identifier.

    Args:
        config: navigation config carrying the base URL, extension and timeout
        client: optional shared AsyncClient (a fresh one is created per call otherwise)
    """

    def __init__(self, config: NavigationConfig | None = None, client: httpx.AsyncClient | None = None):
        self.config = config or NavigationConfig()
        self._client = client

    def artifact_ref(self, person_id: str) -> str:
        return self.config.images_base_url + artifact_name(person_id, self.config.image_extension)

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.config.probe_timeout)

    async def _fetch_ok(self, client: httpx.AsyncClient, url: str) -> bool:
        # Fresh token on every request so a cached 404 (or 200) is never reused
        params = {"v": uuid.uuid4().hex}
        headers = {"User-Agent": USER_AGENT, "Cache-Control": "no-cache"}
        try:
            response = await client.get(url, params=params, headers=headers, timeout=self._timeout())
        except httpx.HTTPError as e:
            logger.debug(f"Probe transport error for {url}: {e}")
            return False

        if response.status_code != 200:
            logger.debug(f"Probe miss for {url}, status: {response.status_code}")
            return False

        content_type = response.headers.get("content-type", "")
        if content_type and not content_type.startswith("image/"):
            logger.debug(f"Probe for {url} returned non-image content: {content_type}")
            return False
        if not response.content:
            logger.debug(f"Probe for {url} returned an empty body")
            return False
        return True

    async def probe(self, person_id: str) -> bool:
        """True if the primary photograph for ``person_id`` can be fetched."""
        url = self.artifact_ref(person_id)
        if self._client is not None:
            found = await self._fetch_ok(self._client, url)
        else:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                found = await self._fetch_ok(client, url)
        logger.debug(f"Probe {person_id}: {'found' if found else 'missing'}")
        return found

    async def locate(self, person_id: str) -> str | None:
        """
        Find the first photograph URL that resolves, trying the fallback
        extensions in order (.jpg, .JPG, .jpeg, .png).
        """
        urls = [self.config.images_base_url + person_id + ext for ext in FALLBACK_EXTENSIONS]
        if self._client is not None:
            return await self._first_ok(self._client, urls)
        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await self._first_ok(client, urls)

    async def _first_ok(self, client: httpx.AsyncClient, urls: list[str]) -> str | None:
        for url in urls:
            if await self._fetch_ok(client, url):
                logger.info(f"Located photograph at {url}")
                return url
        logger.info(f"No photograph found among {len(urls)} fallback urls")
        return None
