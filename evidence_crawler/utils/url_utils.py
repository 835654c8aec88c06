"""
URL helpers

normalize_url() produces the key of the per-run visited set. The remaining
predicates classify a URL by its shape before anything touches the network.
"""
import re
from typing import Optional
from urllib.parse import urlparse, urlunparse, parse_qsl, urlencode

from ..models.content import MediaKind


# Query parameters that only identify a marketing channel
TRACKING_PARAMS = frozenset({
    'utm_source', 'utm_medium', 'utm_campaign', 'utm_term', 'utm_content',
    'fbclid', 'gclid', 'msclkid', 'mc_cid', 'mc_eid', '_ga', '_gl',
    'ref', 'source', 'campaign',
})

# Binary payloads we never try to scrape, grouped by the media kind we record
VIDEO_EXTENSIONS = {'.mp4', '.mov', '.avi', '.mkv', '.webm', '.wmv', '.flv', '.m4v'}
AUDIO_EXTENSIONS = {'.mp3', '.wav', '.ogg', '.flac', '.aac', '.m4a', '.wma'}
DOCUMENT_EXTENSIONS = {
    '.zip', '.rar', '.7z', '.tar', '.gz', '.tgz', '.bz2',
    '.exe', '.msi', '.dmg', '.apk', '.bin', '.iso',
    '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx', '.odt', '.ods', '.odp',
}
NON_SCRAPABLE_EXTENSIONS = VIDEO_EXTENSIONS | AUDIO_EXTENSIONS | DOCUMENT_EXTENSIONS

YOUTUBE_ID_PATTERN = re.compile(
    r'(?:youtube\.com/(?:watch\?(?:.*&)?v=|embed/|shorts/|v/)|youtu\.be/)([A-Za-z0-9_-]{11})'
)


def _bare_host(netloc: str) -> str:
    host = netloc.lower()
    return host[4:] if host.startswith('www.') else host


def normalize_url(url: str) -> str:
    """
    Canonical form used to decide whether two URLs are the same page.

    Lowercases scheme and host, drops "www.", the fragment and tracking
    parameters, and sorts what is left of the query. A trailing slash is
    dropped only when no query remains, since query-routed pages often
    depend on the exact path.
    """
    parsed = urlparse(url.strip())

    kept = sorted(
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key.lower() not in TRACKING_PARAMS
    )
    query = urlencode(kept)
    path = parsed.path if query else (parsed.path.rstrip('/') or '/')

    return urlunparse(((parsed.scheme or 'https').lower(), _bare_host(parsed.netloc), path, '', query, ''))


def visit_key(url: str) -> str:
    """normalize_url() for valid URLs; anything else is only stripped"""
    url = (url or '').strip()
    return normalize_url(url) if is_valid_url(url) else url


def extract_domain(url: str) -> str:
    """Host without "www." ('https://www.reuters.com/x' → 'reuters.com')"""
    try:
        return _bare_host(urlparse(url).netloc)
    except (ValueError, AttributeError):
        return url


def is_valid_url(url: Optional[str]) -> bool:
    """Absolute http(s) URL with a host"""
    if not url or not isinstance(url, str) or any(c.isspace() for c in url.strip()):
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc) and '.' in parsed.netloc


def path_extension(url: str) -> str:
    """Lowercased extension of the URL path ('' if none)"""
    path = urlparse(url).path.lower()
    last = path.rsplit('/', 1)[-1]
    if '.' not in last:
        return ''
    return '.' + last.rsplit('.', 1)[-1]


def non_scrapable_media_kind(url: str) -> Optional[MediaKind]:
    """
    Media kind for URLs we must not fetch, or None if the URL is scrapable.

    .mp4 → Video, .mp3 → Audio, .zip/.docx/... → Document
    """
    ext = path_extension(url)
    if ext in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    if ext in AUDIO_EXTENSIONS:
        return MediaKind.AUDIO
    if ext in DOCUMENT_EXTENSIONS:
        return MediaKind.DOCUMENT
    return None


def is_pdf_url(url: str) -> bool:
    return path_extension(url) == '.pdf'


def is_feed_url(url: str) -> bool:
    """Feed-like URLs are not worth ingesting as references"""
    lowered = url.lower()
    return 'feed' in lowered or urlparse(lowered).path.endswith('.xml')


def youtube_video_id(url: str) -> Optional[str]:
    match = YOUTUBE_ID_PATTERN.search(url or '')
    return match.group(1) if match else None


def archive_fallback_url(url: str) -> str:
    """Latest-snapshot redirect on the Wayback Machine"""
    return f"https://web.archive.org/web/{url}"
