"""
Content extractor - resolved HTML/PDF → text, title, authors, publisher, image, references

Text extraction (in order):
1. Pick the article root (content selectors scored by paragraphs×10 + chars)
2. Trafilatura on the root
3. Readability on the root
4. Plain text of the root

Each metadata field has its own fallback chain (see the _resolve_* methods);
all candidates pass through the pure heuristics in heuristics.py.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List, Dict, Iterable
from urllib.parse import urljoin

import trafilatura
from bs4 import BeautifulSoup, Tag
from dateutil import parser as date_parser
from langdetect import detect, LangDetectException
from readability import Document

from ..config.settings import Settings, get_settings
from ..models.content import (
    UNKNOWN_PUBLISHER, ExtractedContent, MediaKind, ResolvedContent, ResolvedKind, merge_references,
)
from ..utils.html_utils import (
    make_soup, strip_cookie_walls, meta_content, meta_contents, iter_json_ld, ld_types,
)
from .author_parser import merge_author_candidates
from .heuristics import (
    collapse_whitespace, sanitize_title, is_boilerplate, choose_title_from_lines, title_from_url,
    clean_pdf_author, publisher_from_title, is_processable_image, parse_srcset,
)
from .reference_extractor import extract_dom_references, extract_inline_references

logger = logging.getLogger(__name__)

ARTICLE_ROOT_SELECTORS = [
    '[data-cy="article-content"]',
    '.rawHtml-content-no-nativo',
    'article',
    '[role="main"]',
    '.main-content',
    '#main',
    '.content',
    '.post-content',
    '.entry-content',
]
CHROME_TAGS = ['script', 'style', 'noscript', 'template', 'nav', 'header', 'footer', 'aside', 'form', 'iframe', 'svg']

MIN_READABLE_CHARS = 300
MAX_READABLE_CHARS = 64000

PERSON_TYPES = {'Person'}
ORGANIZATION_TYPES = {'NewsMediaOrganization', 'Organization', 'Corporation', 'EducationalOrganization',
                      'GovernmentOrganization', 'Periodical'}
CONTENT_AUTHOR_SCRIPT = re.compile(r'["\']?contentAuthor["\']?\s*:\s*["\']([^"\']{3,120})["\']')
TESTIMONIAL_MARKERS = ('testimonial', 'review', 'case-study')
ATTRIBUTION = re.compile(r'[—–-]\s*([A-Z][^,\n—–]{1,60}?)\s*$')
MAX_TESTIMONIALS = 10


@dataclass
class TextExtraction:
    """Result of the readable-text chain"""
    success: bool
    content: str
    method_used: str
    error_message: Optional[str] = None


class ContentExtractor:
    """
    Extracts primary text and metadata from a ResolvedContent

    Stateless apart from settings; safe to share across a crawl run.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.max_text_length = self.settings.max_text_length
        self.max_references = self.settings.max_references

    def extract(self, resolved: ResolvedContent, name_hint: Optional[str] = None) -> ExtractedContent:
        """
        Extract text + metadata.

        Args:
            resolved: output of FetchResolver.resolve (html or pdf)
            name_hint: display name supplied by the caller (used as title if long enough)
        """
        if resolved.kind == ResolvedKind.PDF:
            return self._extract_pdf(resolved, name_hint)
        if resolved.kind == ResolvedKind.HTML:
            return self._extract_html(resolved, name_hint)
        raise ValueError(f"Cannot extract from {resolved.kind.value} content")

    # =========================================================================
    # DOCUMENT TYPES
    # =========================================================================

    def _extract_html(self, resolved: ResolvedContent, name_hint: Optional[str]) -> ExtractedContent:
        url = resolved.url
        soup = strip_cookie_walls(make_soup(resolved.body))

        text_result = self.extract_readable_text(soup)
        text = text_result.content[:self.max_text_length]
        logger.info(f"📝 Used {text_result.method_used} for {url} ({len(text)} chars)")

        title = self._resolve_title(soup, name_hint, url)
        references = merge_references(
            extract_dom_references(soup, base_url=url, max_results=self.max_references),
            extract_inline_references(text),
        )[:self.max_references]

        return ExtractedContent(
            text=text,
            title=title,
            authors=merge_author_candidates(self._author_candidates(soup)),
            publisher=self._resolve_publisher(soup, title),
            image=self._resolve_image(soup, url),
            references=references,
            testimonial_hints=self._extract_testimonials(soup, url),
            published_at=self._extract_pub_time(soup, resolved.body),
            language=self._detect_language(text),
            media_kind=resolved.media_kind,
        )

    def _extract_pdf(self, resolved: ResolvedContent, name_hint: Optional[str]) -> ExtractedContent:
        text = resolved.body[:self.max_text_length]
        lines = [line.strip() for line in text.splitlines() if line.strip()]

        title = (
            self._hint_title(name_hint)
            or sanitize_title(resolved.pdf_title)
            or choose_title_from_lines(lines)
            or sanitize_title(title_from_url(resolved.url))
            or resolved.url
        )

        pdf_authors = []
        if resolved.pdf_author:
            for piece in re.split(r'\s*(?:;|,|\band\b)\s*', resolved.pdf_author):
                cleaned = clean_pdf_author(piece)
                if cleaned:
                    pdf_authors.append(cleaned)

        return ExtractedContent(
            text=text,
            title=title,
            authors=merge_author_candidates(pdf_authors),
            publisher=UNKNOWN_PUBLISHER,
            image=None,
            references=extract_inline_references(text),
            language=self._detect_language(text),
            media_kind=MediaKind.DOCUMENT,
        )

    # =========================================================================
    # TEXT
    # =========================================================================

    def find_article_root(self, soup: BeautifulSoup) -> Tag:
        """
        Best-scoring content container, or the cleaned body.

        score = paragraphs × 10 + characters; a candidate needs ≥2 paragraphs
        and >200 characters of text.
        """
        best, best_score = None, 0
        for selector in ARTICLE_ROOT_SELECTORS:
            for candidate in soup.select(selector):
                paragraphs = len(candidate.find_all('p'))
                chars = len(candidate.get_text(' ', strip=True))
                if paragraphs < 2 or chars <= 200:
                    continue
                score = paragraphs * 10 + chars
                if score > best_score:
                    best, best_score = candidate, score

        if best is not None:
            return best

        body = BeautifulSoup(str(soup.body or soup), 'lxml')
        for tag in body(CHROME_TAGS):
            tag.decompose()
        return body.body or body

    def extract_readable_text(self, soup: BeautifulSoup) -> TextExtraction:
        """Trafilatura → Readability → root text, on the article root only"""
        root = self.find_article_root(soup)
        root_html = str(root)

        for attempt in (self._try_trafilatura, self._try_readability):
            result = attempt(root_html)
            if result.success:
                return result

        clone = BeautifulSoup(root_html, 'lxml')
        for tag in clone(CHROME_TAGS):
            tag.decompose()
        return TextExtraction(
            success=bool(clone.get_text(strip=True)),
            content=collapse_whitespace(clone.get_text(' ', strip=True)),
            method_used='root_text',
        )

    def _is_readable(self, text: Optional[str]) -> bool:
        length = len((text or '').strip())
        return MIN_READABLE_CHARS < length < MAX_READABLE_CHARS

    def _try_trafilatura(self, html: str) -> TextExtraction:
        try:
            extracted = trafilatura.extract(
                html,
                include_comments=False,
                include_tables=False,
                no_fallback=False
            )
            if self._is_readable(extracted):
                return TextExtraction(success=True, content=extracted.strip(), method_used='trafilatura')
            return TextExtraction(
                success=False,
                content=extracted or '',
                method_used='trafilatura',
                error_message=f"Unusable length ({len(extracted or '')} chars)"
            )
        except Exception as e:
            logger.warning(f"Trafilatura failed: {e}")
            return TextExtraction(success=False, content='', method_used='trafilatura', error_message=str(e))

    def _try_readability(self, html: str) -> TextExtraction:
        try:
            summary_html = Document(html).summary()
            text = BeautifulSoup(summary_html, 'lxml').get_text(separator=' ', strip=True)
            if self._is_readable(text):
                return TextExtraction(success=True, content=collapse_whitespace(text), method_used='readability')
            return TextExtraction(
                success=False,
                content=text or '',
                method_used='readability',
                error_message=f"Unusable length ({len(text or '')} chars)"
            )
        except Exception as e:
            logger.warning(f"Readability failed: {e}")
            return TextExtraction(success=False, content='', method_used='readability', error_message=str(e))

    # =========================================================================
    # TITLE
    # =========================================================================

    def _hint_title(self, name_hint: Optional[str]) -> Optional[str]:
        hint = collapse_whitespace(name_hint)
        if len(hint) > 5 and not is_boilerplate(hint):
            return hint[:200]
        return None

    def _resolve_title(self, soup: BeautifulSoup, name_hint: Optional[str], url: str) -> str:
        """
        Title resolution order:
        1. Caller-supplied name (>5 chars)
        2. Document metadata (og:title, <title>, citation_title, JSON-LD headline)
        3. Main heading (h1, then h2, then headline/title-class elements)
        4. URL slug
        """
        hint = self._hint_title(name_hint)
        if hint:
            return hint

        candidates = [
            meta_content(soup, 'og:title', 'twitter:title'),
            soup.title.get_text(' ', strip=True) if soup.title else None,
            meta_content(soup, 'citation_title', 'dc.title', 'DC.title'),
        ]
        candidates.extend(
            obj.get('headline') for obj in iter_json_ld(soup) if isinstance(obj.get('headline'), str)
        )
        candidates.append(self._main_heading(soup))
        candidates.append(title_from_url(url))

        for candidate in candidates:
            title = sanitize_title(candidate)
            if title and title.lower() != 'bookshelf':
                return title
        return url

    def _main_heading(self, soup: BeautifulSoup) -> Optional[str]:
        def usable(el: Tag) -> bool:
            marker = ' '.join(el.get('class') or []) + ' ' + (el.get('id') or '')
            marker = marker.lower()
            return 'navigat' not in marker and 'hidden' not in marker

        for level in ('h1', 'h2'):
            for heading in soup.find_all(level):
                if usable(heading):
                    text = heading.get_text(' ', strip=True)
                    if text:
                        return text

        for el in soup.select('[class*="headline"], [id*="headline"], [data-testid*="headline"], [class*="title"]'):
            if usable(el):
                text = el.get_text(' ', strip=True)
                if text and len(text) < 250:
                    return text
        return None

    # =========================================================================
    # AUTHORS
    # =========================================================================

    def _author_candidates(self, soup: BeautifulSoup) -> Iterable[str]:
        """
        Byline strings in priority order (merged + deduped by the caller):
        1. JSON-LD Person authors
        2. meta author / article:author
        3. citation_author meta tags
        4. DOM bylines (rel=author, .byline, author wrappers)
        5. Script-embedded contentAuthor (site analytics blobs)
        """
        candidates: List[str] = []

        for obj in iter_json_ld(soup):
            authors = obj.get('author') or obj.get('creator')
            for author in (authors if isinstance(authors, list) else [authors]):
                if isinstance(author, str):
                    candidates.append(author)
                elif isinstance(author, dict):
                    name = author.get('name')
                    types = ld_types(author)
                    if isinstance(name, str) and (not types or types & PERSON_TYPES):
                        candidates.append(name)

        meta_author = meta_content(soup, 'author', 'article:author', 'parsely-author', 'sailthru.author')
        if meta_author and not meta_author.startswith('http'):
            candidates.append(meta_author)

        candidates.extend(meta_contents(soup, 'citation_author'))

        for el in soup.select('[rel="author"], .byline, [class*="author"][class*="wrapper"]'):
            text = el.get_text(' ', strip=True)
            if text and len(text) < 120:
                candidates.append(text)

        for script in soup.find_all('script'):
            body = script.string or ''
            if 'contentAuthor' in body:
                match = CONTENT_AUTHOR_SCRIPT.search(body)
                if match:
                    candidates.append(match.group(1))

        return candidates

    # =========================================================================
    # PUBLISHER
    # =========================================================================

    def _resolve_publisher(self, soup: BeautifulSoup, title: Optional[str]) -> str:
        """
        Publisher resolution order:
        1. JSON-LD publisher.name / isPartOf.name / organization node
        2. og:site_name, publisher, application-name
        3. citation_journal_title
        4. Title heuristic ("X on <platform>", "headline | Site")
        5. "Unknown Publisher"
        """
        ld_objects = list(iter_json_ld(soup))
        for key in ('publisher', 'isPartOf', 'sourceOrganization'):
            for obj in ld_objects:
                value = obj.get(key)
                for item in (value if isinstance(value, list) else [value]):
                    if isinstance(item, dict) and isinstance(item.get('name'), str) and item['name'].strip():
                        return item['name'].strip()
        for obj in ld_objects:
            if ld_types(obj) & ORGANIZATION_TYPES and isinstance(obj.get('name'), str) and obj['name'].strip():
                return obj['name'].strip()

        publisher = (
            meta_content(soup, 'og:site_name', 'publisher', 'application-name', 'article:publisher')
            or meta_content(soup, 'citation_journal_title', 'citation_publisher')
        )
        if publisher and not publisher.startswith('http'):
            return publisher

        raw_title = soup.title.get_text(' ', strip=True) if soup.title else title
        return publisher_from_title(raw_title) or publisher_from_title(title) or UNKNOWN_PUBLISHER

    # =========================================================================
    # IMAGE
    # =========================================================================

    def _resolve_image(self, soup: BeautifulSoup, base_url: str) -> Optional[str]:
        """JSON-LD image → og:image → largest real-photo <img>"""
        for obj in iter_json_ld(soup):
            image = obj.get('image') or obj.get('thumbnailUrl')
            if isinstance(image, list):
                image = image[0] if image else None
            if isinstance(image, dict):
                image = image.get('url') or image.get('contentUrl')
            if isinstance(image, str) and image.strip() and not image.startswith(('data:', 'blob:')):
                return urljoin(base_url, image.strip())

        og_image = meta_content(soup, 'og:image', 'og:image:url', 'twitter:image')
        if og_image and not og_image.startswith(('data:', 'blob:')):
            return urljoin(base_url, og_image)

        best_url, best_area = None, -1
        for img in soup.find_all('img'):
            src = img.get('src') or img.get('data-src') or ''
            srcset_width = 0
            best_src = parse_srcset(img.get('srcset') or img.get('data-srcset'))
            if best_src:
                src, srcset_width = best_src
            if not src:
                continue
            src = urljoin(base_url, src.strip())
            if not is_processable_image(src):
                continue

            width = _dimension(img.get('width')) or srcset_width
            height = _dimension(img.get('height')) or (width * 2 // 3 if width else 0)
            area = width * height
            if area > best_area:
                best_url, best_area = src, area
        return best_url

    # =========================================================================
    # TESTIMONIALS / DATES / LANGUAGE
    # =========================================================================

    def _extract_testimonials(self, soup: BeautifulSoup, base_url: str) -> List[Dict]:
        """First-person quotes the semantic service can treat as testimonial hints"""
        results: List[Dict] = []
        seen = set()

        def marked(el: Tag) -> bool:
            marker = (' '.join(el.get('class') or []) + ' ' + (el.get('id') or '')).lower()
            return any(m in marker for m in TESTIMONIAL_MARKERS)

        for el in soup.find_all(lambda t: t.name == 'blockquote' or marked(t)):
            text = collapse_whitespace(el.get_text(' ', strip=True))
            if len(text) < 40 or text in seen:
                continue
            seen.add(text)

            name = None
            match = ATTRIBUTION.search(text)
            if match:
                name = match.group(1).strip()
                text = text[:match.start()].strip()

            img = el.find('img')
            image_url = urljoin(base_url, img['src']) if img and img.get('src') else None
            results.append({'text': text, 'name': name, 'imageUrl': image_url})
            if len(results) >= MAX_TESTIMONIALS:
                break
        return results

    def _extract_pub_time(self, soup: BeautifulSoup, html: str) -> Optional[datetime]:
        """
        Publication time with multiple fallbacks

        Strategy:
        1. Trafilatura metadata (only if it has a time component)
        2. Common meta tags / <time datetime>
        3. JSON-LD datePublished & friends
        4. Trafilatura date-only as last resort; never the fetch time
        """
        trafilatura_date = None
        try:
            metadata = trafilatura.extract_metadata(html)
            if metadata and metadata.date:
                dt = date_parser.parse(metadata.date)
                if dt.hour or dt.minute or dt.second:
                    return dt
                trafilatura_date = dt
        except Exception as e:
            logger.debug(f"Trafilatura metadata failed: {e}")

        candidates = [
            meta_content(soup, 'article:published_time', 'datePublished', 'citation_publication_date',
                         'citation_date', 'dc.date', 'pubdate'),
        ]
        itemprop = soup.find(attrs={'itemprop': 'datePublished'})
        if itemprop:
            candidates.append(itemprop.get('content') or itemprop.get('datetime'))
        time_tag = soup.find('time', attrs={'datetime': True})
        if time_tag:
            candidates.append(time_tag['datetime'])
        for obj in iter_json_ld(soup):
            for field in ('datePublished', 'publishDate', 'dateCreated', 'uploadDate'):
                if isinstance(obj.get(field), str):
                    candidates.append(obj[field])

        for candidate in candidates:
            if not candidate:
                continue
            try:
                return date_parser.parse(candidate)
            except (ValueError, OverflowError):
                continue

        return trafilatura_date

    def _detect_language(self, text: str) -> Optional[str]:
        if not text or len(text.strip()) < 20:
            return None
        try:
            return detect(text[:1000])
        except LangDetectException:
            return None


def _dimension(value) -> int:
    """'640', '640px' → 640; anything else → 0"""
    if not value:
        return 0
    match = re.match(r'\s*(\d+)', str(value))
    return int(match.group(1)) if match else 0
