"""
Reference extraction - outbound citation links from a document

Sources, merged in first-seen order:
1. DOM anchors inside the article body that look like citations
2. JSON-LD citation/references fields
3. Bare DOI/arXiv/PubMed URLs in the plain text
"""
import logging
import re
from typing import List, Optional, Iterable
from urllib.parse import urljoin, urlparse, unquote

from bs4 import BeautifulSoup, Tag

from ..models.content import ReferenceLink, ReferenceOrigin
from ..utils.html_utils import iter_json_ld
from ..utils.url_utils import visit_key
from .heuristics import has_citation_cue, is_bad_reference_url

logger = logging.getLogger(__name__)

MAX_DOM_REFERENCES = 30
MAX_INLINE_REFERENCES = 20

CONTENT_SELECTORS = [
    'article', 'main', "[role='main']", '.article-body', '.article__content',
    '.entry-content', '.post-content', '.content__article-body', '.story-body',
    '.story__content', '.rich-text', '.prose', '.content', '.body-content',
    '.article-content', '.articleText',
]

BAD_ANCESTOR_TAGS = {'nav', 'header', 'footer', 'aside'}
BAD_ANCESTOR_CLASSES = {
    'menu', 'navbar', 'breadcrumbs', 'subscribe', 'share', 'social', 'recirc',
    'recommended', 'most-read', 'mostViewed', 'newsletter', 'related-links',
    'comments', 'outbrain', 'ad', 'advert', 'sponsored',
}

# Anchors must sit in running text, not in a bare link list or button
TEXT_CONTAINER_TAGS = {'p', 'li', 'figcaption', 'sup'}
TEXT_CONTAINER_CLASSES = {'footnote'}

INLINE_PATTERNS = [
    re.compile(r'https?://(?:dx\.)?doi\.org/[^\s<>"\']+', re.IGNORECASE),
    re.compile(r'https?://arxiv\.org/(?:abs|pdf)/[^\s<>"\']+', re.IGNORECASE),
    re.compile(r'https?://(?:www\.)?ncbi\.nlm\.nih\.gov/pubmed/[^\s<>"\']+', re.IGNORECASE),
    re.compile(r'https?://pubmed\.ncbi\.nlm\.nih\.gov/[^\s<>"\']+', re.IGNORECASE),
    re.compile(
        r'https?://(?:www\.)?(?:nature\.com|science\.org|sciencedirect\.com|springer\.com|'
        r'wiley\.com|plos\.org|biorxiv\.org|medrxiv\.org)/[^\s<>"\']+',
        re.IGNORECASE,
    ),
]
BARE_DOI = re.compile(r'\bdoi:\s*(10\.\d{4,9}/[^\s<>"\']+)', re.IGNORECASE)
TRAILING_PUNCTUATION = re.compile(r'[.,;:!?)\]]+$')


def format_url_for_title(url: str) -> str:
    """Readable fallback title: path segments longer than 3 chars, '-'/'_' → space"""
    try:
        parsed = urlparse(url)
    except ValueError:
        return url
    parts = [p for p in unquote(parsed.path).split('/') if len(p) > 3]
    if not parts:
        return parsed.netloc or url
    return re.sub(r'[-_]', ' ', ' '.join(parts))


def _classes(tag: Tag) -> set:
    classes = tag.get('class') or []
    if isinstance(classes, str):
        classes = classes.split()
    return set(classes)


def _has_bad_ancestor(anchor: Tag) -> bool:
    for parent in anchor.parents:
        if not isinstance(parent, Tag):
            continue
        if parent.name in BAD_ANCESTOR_TAGS:
            return True
        if _classes(parent) & BAD_ANCESTOR_CLASSES:
            return True
    return False


def _text_container(anchor: Tag) -> Optional[Tag]:
    for parent in anchor.parents:
        if not isinstance(parent, Tag):
            continue
        if parent.name in TEXT_CONTAINER_TAGS or _classes(parent) & TEXT_CONTAINER_CLASSES:
            return parent
    return None


def _content_scopes(soup: BeautifulSoup) -> List[Tag]:
    """Outermost content containers (nested matches would double-count anchors)"""
    scopes = soup.select(', '.join(CONTENT_SELECTORS))
    outermost = []
    for scope in scopes:
        if not any(parent is kept for kept in outermost for parent in scope.parents):
            outermost.append(scope)
    if outermost:
        return outermost
    return [soup.body or soup]


class _Collector:
    """First-seen-order, URL-deduplicated reference list with a hard cap"""

    def __init__(self, limit: int):
        self.limit = limit
        self.seen = set()
        self.refs: List[ReferenceLink] = []

    @property
    def full(self) -> bool:
        return len(self.refs) >= self.limit

    def add(self, url: Optional[str], title: str = '') -> bool:
        if self.full or not url:
            return False
        href = url.strip()
        key = visit_key(href)
        if is_bad_reference_url(href) or key in self.seen:
            return False
        self.seen.add(key)
        self.refs.append(ReferenceLink(
            url=href,
            title=' '.join((title or '').split()) or format_url_for_title(href),
            origin=ReferenceOrigin.DOM,
        ))
        return True


def extract_dom_references(soup: BeautifulSoup, base_url: str = '',
                           max_results: int = MAX_DOM_REFERENCES) -> List[ReferenceLink]:
    """
    Citation-looking anchors inside the article body, plus JSON-LD citations.

    An anchor is kept when:
    - it's inside a content container and not under nav/footer/share/ad chrome
    - it sits in running text (p, li, figcaption, sup, .footnote)
    - its own text or its container's text carries a citation cue
    """
    collector = _Collector(max_results)

    for scope in _content_scopes(soup):
        for anchor in scope.find_all('a', href=True):
            if collector.full:
                break
            href = urljoin(base_url, anchor['href'].strip()) if base_url else anchor['href'].strip()
            if not href.startswith('http') or is_bad_reference_url(href):
                continue
            if _has_bad_ancestor(anchor):
                continue
            container = _text_container(anchor)
            if container is None:
                continue

            anchor_text = anchor.get_text(' ', strip=True)
            container_text = container.get_text(' ', strip=True) or anchor_text
            if not has_citation_cue(anchor_text) and not has_citation_cue(container_text):
                continue
            collector.add(href, anchor_text)

    for url, title in _json_ld_citations(soup):
        if collector.full:
            break
        collector.add(url, title)

    return collector.refs


def _json_ld_citations(soup: BeautifulSoup) -> Iterable[tuple]:
    """(url, title) pairs from citation/references fields, recursing into containers"""
    for obj in iter_json_ld(soup):
        yield from _walk_citations(obj, depth=0)


def _walk_citations(node, depth: int):
    if depth > 6 or not isinstance(node, dict):
        return
    for key in ('citation', 'references', 'reference'):
        value = node.get(key)
        items = value if isinstance(value, list) else [value]
        for item in items:
            if isinstance(item, str) and item.startswith('http'):
                yield item, ''
            elif isinstance(item, dict):
                url = item.get('url') or item.get('@id') or item.get('sameAs')
                if isinstance(url, list):
                    url = url[0] if url else None
                title = item.get('name') or item.get('headline') or ''
                if isinstance(url, str) and url.startswith('http'):
                    yield url, title if isinstance(title, str) else ''
    for key in ('isPartOf', 'hasPart', 'itemListElement', 'mainEntity'):
        value = node.get(key)
        for child in (value if isinstance(value, list) else [value]):
            yield from _walk_citations(child, depth + 1)


def _inline_name(url: str) -> str:
    parsed = urlparse(url)
    host = parsed.netloc.lower()
    if 'doi.org' in host:
        return f"DOI: {parsed.path.lstrip('/')}"
    if 'arxiv.org' in host:
        return f"arXiv: {parsed.path.rstrip('/').split('/')[-1]}"
    if 'pubmed' in host or 'ncbi.nlm.nih.gov' in host:
        return f"PubMed: {parsed.path.rstrip('/').split('/')[-1]}"
    parts = [p for p in parsed.path.split('/') if len(p) > 3]
    return re.sub(r'[-_]', ' ', parts[-1]) if parts else host


def extract_inline_references(text: str, max_results: int = MAX_INLINE_REFERENCES) -> List[ReferenceLink]:
    """
    DOI/arXiv/PubMed/publisher URLs written out in plain text.

    Bare "doi:10.xxxx/..." mentions are resolved to https://doi.org/...
    """
    if not text:
        return []

    found = []
    for pattern in INLINE_PATTERNS:
        found.extend(m.group(0) for m in pattern.finditer(text))
    found.extend(f"https://doi.org/{m.group(1)}" for m in BARE_DOI.finditer(text))

    refs: List[ReferenceLink] = []
    seen = set()
    for raw in found:
        url = TRAILING_PUNCTUATION.sub('', raw)
        if url in seen or is_bad_reference_url(url):
            continue
        seen.add(url)
        refs.append(ReferenceLink(url=url, title=_inline_name(url), origin=ReferenceOrigin.DOM))
        if len(refs) >= max_results:
            break
    return refs
