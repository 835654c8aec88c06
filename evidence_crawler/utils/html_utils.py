"""
HTML helpers shared by the fetch resolver and the content extractor
"""
import json
import logging
from typing import Iterator, Any, Optional

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

COOKIE_WALL_SELECTORS = [
    '[id*="cookie"]',
    '[class*="cookie"]',
    '[id*="consent"]',
    '[class*="consent"]',
    '.qc-cmp2-container',
    '.truste_popframe',
    '#onetrust-banner-sdk',
]

# Layout roots sometimes carry "cookie-banner-open" style classes; never drop them
PROTECTED_TAGS = {'html', 'body', 'main', 'article'}
MAX_OVERLAY_TEXT = 3000

NON_CONTENT_TAGS = ['script', 'style', 'noscript', 'template', 'link', 'svg', 'iframe']


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or '', 'lxml')


def strip_cookie_walls(soup: BeautifulSoup) -> BeautifulSoup:
    """Remove cookie/consent overlays in place"""
    for selector in COOKIE_WALL_SELECTORS:
        for el in soup.select(selector):
            if el.decomposed or el.name in PROTECTED_TAGS:
                continue
            if len(el.get_text(' ', strip=True)) > MAX_OVERLAY_TEXT:
                continue
            el.decompose()
    return soup


def visible_text(soup: BeautifulSoup) -> str:
    """Whitespace-collapsed text with scripts/styles removed (soup is not mutated)"""
    clone = BeautifulSoup(str(soup), 'lxml')
    for tag in clone(NON_CONTENT_TAGS):
        tag.decompose()
    return ' '.join(clone.get_text(' ', strip=True).split())


def meta_content(soup: BeautifulSoup, *keys: str) -> Optional[str]:
    """First non-empty <meta> content matching any name/property key"""
    for key in keys:
        tag = soup.find('meta', attrs={'property': key}) or soup.find('meta', attrs={'name': key})
        if tag and tag.get('content') and tag['content'].strip():
            return tag['content'].strip()
    return None


def meta_contents(soup: BeautifulSoup, key: str) -> list:
    """All non-empty <meta name=key> contents, in document order"""
    values = []
    for tag in soup.find_all('meta', attrs={'name': key}):
        content = (tag.get('content') or '').strip()
        if content:
            values.append(content)
    return values


def iter_json_ld(soup: BeautifulSoup) -> Iterator[dict]:
    """
    Yield every JSON-LD object on the page.

    Flattens top-level arrays and @graph containers; unparseable blocks are
    skipped.
    """
    for script in soup.find_all('script', attrs={'type': 'application/ld+json'}):
        raw = script.string or script.get_text() or ''
        if not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed JSON-LD block")
            continue
        yield from _flatten_ld(data)


def _flatten_ld(data: Any) -> Iterator[dict]:
    if isinstance(data, list):
        for item in data:
            yield from _flatten_ld(item)
    elif isinstance(data, dict):
        yield data
        if isinstance(data.get('@graph'), list):
            for item in data['@graph']:
                yield from _flatten_ld(item)


def ld_types(obj: dict) -> set:
    """@type as a set of strings (it may be a string or a list)"""
    value = obj.get('@type')
    if isinstance(value, str):
        return {value}
    if isinstance(value, list):
        return {v for v in value if isinstance(v, str)}
    return set()
