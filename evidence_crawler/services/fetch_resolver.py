"""
FetchResolver - Turn a URL into renderable content

Fallback chain (stops at first success):
1. Non-scrapable binary (.mp4, .zip, .docx, ...) → placeholder, no network
2. HEAD probe → PDF? fetch bytes, extract text + metadata, rasterize page 1
3. Direct fetch (httpx, browser UA + referer) → strip cookie walls
4. Headless render (Playwright) if text is thin, blocked, or a feed
5. Headless render of a Wayback Machine snapshot
6. unusable

Success = at least min_text_length characters of visible text.

Every stage failure is soft: logged and turned into "try the next stage".
Only a syntactically invalid URL raises (FatalInputFailure).

Fetch strategy is explicit:
- RemoteFetch: run the chain above
- LiveDom: the caller already holds the rendered HTML (e.g. a browser
  extension tab); use it when sufficient, otherwise fall back to RemoteFetch
"""
import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Optional, Union, Awaitable, Callable, TypeVar

import httpx

from ..config.settings import Settings, get_settings
from ..exceptions import SoftFetchFailure, FatalInputFailure
from ..models.content import ResolvedContent, ResolvedKind, MediaKind
from ..utils.html_utils import make_soup, strip_cookie_walls, visible_text, meta_content
from ..utils.url_utils import (
    is_valid_url, is_pdf_url, non_scrapable_media_kind, youtube_video_id, archive_fallback_url,
)
from .headless_renderer import PlaywrightRenderer
from .heuristics import is_blocked_content, is_likely_feed, detect_retraction, is_sufficient_text
from .pdf_service import PdfService

logger = logging.getLogger(__name__)

T = TypeVar('T')

DESKTOP_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)
WAYBACK_AVAILABILITY_API = 'https://archive.org/wayback/available'
WAYBACK_TIMESTAMP = re.compile(r'/web/(\d+)/')


@dataclass
class RemoteFetch:
    """Fetch the URL over the network"""
    pass


@dataclass
class LiveDom:
    """HTML already loaded by the caller (e.g. the user's open tab)"""
    html: str


FetchStrategy = Union[RemoteFetch, LiveDom]


class FetchResolver:
    """
    Multi-stage fetch with soft fallbacks

    Collaborators are injected so tests can swap in fakes:
    - renderer: anything with `async render(url) -> html`
    - pdf_service: anything with extract_pdf_text/rasterize_first_page
    """

    def __init__(
        self,
        renderer: Optional[PlaywrightRenderer] = None,
        pdf_service: Optional[PdfService] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.renderer = renderer or PlaywrightRenderer(timeout_ms=self.settings.render_timeout_ms)
        self.pdf_service = pdf_service or PdfService()
        self.min_text_length = self.settings.min_text_length

    @property
    def headers(self) -> dict:
        return {
            'User-Agent': DESKTOP_USER_AGENT,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,application/pdf;q=0.8,*/*;q=0.7',
            'Accept-Language': 'en-US,en;q=0.9',
        }

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    async def resolve(self, url: str, strategy: Optional[FetchStrategy] = None) -> ResolvedContent:
        """
        Resolve a URL to HTML, PDF text, a placeholder, or unusable.

        Raises:
            FatalInputFailure: url is not an absolute http(s) URL
        """
        if not is_valid_url(url):
            raise FatalInputFailure(f"Invalid URL: {url!r}")
        url = url.strip()
        strategy = strategy or RemoteFetch()

        # Stage 1: never download videos/archives/office documents
        media_kind = non_scrapable_media_kind(url)
        if media_kind:
            logger.info(f"⏭️ Non-scrapable {media_kind.value} URL, placeholder only: {url}")
            return ResolvedContent(
                kind=ResolvedKind.PLACEHOLDER, url=url, stage='short_circuit', media_kind=media_kind
            )

        web_media = MediaKind.YOUTUBE if youtube_video_id(url) else MediaKind.WEB

        if isinstance(strategy, LiveDom):
            result = self._accept_html(url, strategy.html, stage='live_dom', media_kind=web_media)
            if result:
                return result
            logger.info(f"📄 Live DOM insufficient for {url}, falling back to remote fetch")

        # Stage 2: PDF?
        if await self._probe_is_pdf(url):
            result = await self._run_stage('pdf', url, lambda: self._resolve_pdf(url))
            if result:
                return result

        # Stage 3: direct fetch
        result = await self._run_stage('direct', url, lambda: self._direct_fetch(url, web_media))
        if result:
            return result

        # Stage 4: headless render
        result = await self._run_stage('headless', url, lambda: self._render(url, url, 'headless', web_media))
        if result:
            return result

        # Stage 5: archived snapshot via headless render
        result = await self._run_stage('archive', url, lambda: self._render_archive(url, web_media))
        if result:
            return result

        logger.warning(f"❌ All fetch stages failed for {url}")
        return ResolvedContent(kind=ResolvedKind.UNUSABLE, url=url, media_kind=web_media)

    # =========================================================================
    # STAGE PLUMBING
    # =========================================================================

    async def _run_stage(
        self,
        stage: str,
        url: str,
        fn: Callable[[], Awaitable[Optional[T]]],
        timeout: Optional[float] = None,
    ) -> Optional[T]:
        """
        Run one stage with an explicit timeout; every failure becomes None.

        The timeout defaults to the render timeout plus 15s.
        """
        timeout = timeout or (self.settings.render_timeout_ms / 1000.0 + 15.0)
        try:
            return await asyncio.wait_for(fn(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ [{stage}] timed out after {timeout:.0f}s for {url}")
        except SoftFetchFailure as e:
            logger.info(f"↪️ [{stage}] soft failure for {url}: {e}")
        except Exception as e:
            logger.warning(f"⚠️ [{stage}] unexpected failure for {url}: {e}")
        return None

    def _accept_html(self, url: str, html: str, stage: str,
                     media_kind: MediaKind = MediaKind.WEB) -> Optional[ResolvedContent]:
        """Cookie-wall-stripped HTML if it has enough real text, else None"""
        if not html or is_likely_feed(html):
            return None
        if is_blocked_content(html):
            logger.info(f"🚧 [{stage}] Blocked/interstitial content for {url}")
            return None

        soup = strip_cookie_walls(make_soup(html))
        text = visible_text(soup)
        if not is_sufficient_text(text, self.min_text_length):
            logger.info(f"📉 [{stage}] Thin content ({len(text)} chars) for {url}")
            return None

        title = soup.title.get_text(strip=True) if soup.title else ''
        retracted = (
            detect_retraction(title, text[:1000])
            or bool(meta_content(soup, 'citation_retracted', 'retraction'))
        )

        logger.info(f"✅ [{stage}] Resolved {len(text)} chars of text from {url}")
        return ResolvedContent(
            kind=ResolvedKind.HTML,
            url=url,
            body=str(soup),
            retracted=retracted,
            stage=stage,
            media_kind=media_kind,
        )

    # =========================================================================
    # STAGES
    # =========================================================================

    async def _probe_is_pdf(self, url: str) -> bool:
        """HEAD content-type sniff; the .pdf extension wins if the probe fails"""
        if is_pdf_url(url):
            return True
        try:
            async with httpx.AsyncClient(timeout=self.settings.fetch_timeout, follow_redirects=True) as client:
                response = await client.head(url, headers=self.headers)
                content_type = response.headers.get('content-type', '').lower()
                return 'application/pdf' in content_type
        except httpx.HTTPError as e:
            logger.debug(f"HEAD probe failed for {url}: {e}")
            return False

    async def _resolve_pdf(self, url: str) -> Optional[ResolvedContent]:
        async with httpx.AsyncClient(timeout=self.settings.fetch_timeout * 2, follow_redirects=True) as client:
            response = await client.get(url, headers={**self.headers, 'Referer': url})

        if response.status_code != 200:
            raise SoftFetchFailure(f"HTTP {response.status_code} fetching PDF")

        data = response.content
        if not data.startswith(b'%PDF'):
            # Mislabeled; let the HTML stages have it
            raise SoftFetchFailure("Response is not a PDF")

        extraction = await self.pdf_service.extract_pdf_text(data)
        if not is_sufficient_text(extraction.text, self.min_text_length):
            raise SoftFetchFailure(f"PDF text too short ({len(extraction.text)} chars)")

        thumbnail = None
        try:
            thumbnail = await self.pdf_service.rasterize_first_page(data)
        except Exception as e:
            logger.warning(f"⚠️ PDF thumbnail failed for {url}: {e}")

        logger.info(f"📑 PDF resolved: {extraction.pages} pages, {len(extraction.text)} chars from {url}")
        return ResolvedContent(
            kind=ResolvedKind.PDF,
            url=url,
            body=extraction.text,
            retracted=detect_retraction(extraction.title, extraction.text[:1000]),
            stage='pdf',
            media_kind=MediaKind.DOCUMENT,
            pdf_title=extraction.title,
            pdf_author=extraction.author,
            thumbnail=thumbnail,
        )

    async def _direct_fetch(self, url: str, media_kind: MediaKind) -> Optional[ResolvedContent]:
        try:
            async with httpx.AsyncClient(timeout=self.settings.fetch_timeout, follow_redirects=True) as client:
                response = await client.get(url, headers={**self.headers, 'Referer': url})
        except httpx.TimeoutException as e:
            raise SoftFetchFailure(f"Timeout fetching {url}") from e
        except httpx.HTTPError as e:
            raise SoftFetchFailure(f"HTTP error fetching {url}: {e}") from e

        if response.status_code != 200:
            raise SoftFetchFailure(f"HTTP {response.status_code}")

        return self._accept_html(url, response.text, stage='direct', media_kind=media_kind)

    async def _render(self, url: str, target: str, stage: str,
                      media_kind: MediaKind) -> Optional[ResolvedContent]:
        html = await self.renderer.render(target)
        return self._accept_html(url, html, stage=stage, media_kind=media_kind)

    async def _render_archive(self, url: str, media_kind: MediaKind) -> Optional[ResolvedContent]:
        snapshot = await self.find_archive_snapshot(url)
        logger.info(f"🏛️ Trying archived snapshot {snapshot}")
        return await self._render(url, snapshot, 'archive', media_kind)

    async def find_archive_snapshot(self, url: str) -> str:
        """
        Closest Wayback snapshot, rewritten to the raw (id_) form so the
        archive toolbar isn't injected. Falls back to the latest-snapshot redirect.
        """
        try:
            async with httpx.AsyncClient(timeout=self.settings.archive_timeout) as client:
                response = await client.get(WAYBACK_AVAILABILITY_API, params={'url': url})
                response.raise_for_status()
                closest = (response.json().get('archived_snapshots') or {}).get('closest') or {}
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Wayback availability lookup failed for {url}: {e}")
            closest = {}

        snapshot = closest.get('url') if closest.get('available') else None
        if not snapshot:
            return archive_fallback_url(url)

        snapshot = WAYBACK_TIMESTAMP.sub(r'/web/\1id_/', snapshot, count=1)
        return snapshot.replace('http://', 'https://', 1)
