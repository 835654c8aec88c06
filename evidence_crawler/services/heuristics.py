"""
Text heuristics - small pure predicates/transforms on normalized text

Each function encodes one judgment call (is this a block page? a plausible
title? a citation?) and has its own unit tests in tests/test_heuristics.py.
Nothing here touches the network or holds state.
"""
import re
from typing import Optional, List, Tuple
from urllib.parse import urlparse, unquote


# =============================================================================
# BLOCK PAGES / FEEDS / RETRACTIONS
# =============================================================================

# One of these anywhere in the page means an interstitial, not content
CRITICAL_BLOCK_INDICATORS = [
    'access denied',
    '403 forbidden',
    '404 not found',
    'captcha',
    'are you a robot',
    'cloudflare security check',
    'checking your browser',
    'enable cookies to continue',
    'enable javascript and cookies',
]

# Normal pages mention these too; only a pile of them signals a wall
SOFT_BLOCK_INDICATORS = [
    'sign in',
    'log in',
    'login required',
    'please enable javascript',
]
SOFT_BLOCK_THRESHOLD = 4
MIN_HTML_LENGTH = 100

RETRACTION_PATTERN = re.compile(r'\b(retracted|withdrawn)\b', re.IGNORECASE)


def collapse_whitespace(text: Optional[str]) -> str:
    return re.sub(r'\s+', ' ', text or '').strip()


def is_blocked_content(html: Optional[str]) -> bool:
    """
    Detect anti-bot interstitials, error pages and login walls.

    Blocked if:
    - HTML shorter than 100 chars
    - any critical indicator present
    - 4+ soft indicator occurrences
    """
    if not html or len(html) < MIN_HTML_LENGTH:
        return True

    lowered = html.lower()
    if any(indicator in lowered for indicator in CRITICAL_BLOCK_INDICATORS):
        return True

    soft_hits = sum(lowered.count(indicator) for indicator in SOFT_BLOCK_INDICATORS)
    return soft_hits >= SOFT_BLOCK_THRESHOLD


def is_likely_feed(body: Optional[str]) -> bool:
    """RSS/Atom payloads served where an article was expected"""
    if not body:
        return False
    head = body.lstrip()[:500].lower()
    if head.startswith('<?xml'):
        head = head.split('?>', 1)[-1].lstrip()
    return head.startswith('<rss') or '<feed' in head


def detect_retraction(*texts: Optional[str]) -> bool:
    return any(RETRACTION_PATTERN.search(t or '') for t in texts)


def is_sufficient_text(text: Optional[str], min_length: int = 300) -> bool:
    return len(collapse_whitespace(text)) >= min_length


# =============================================================================
# TITLES
# =============================================================================

TITLE_MIN_LENGTH = 10
TITLE_MAX_LENGTH = 200
TITLE_LINE_MAX_LENGTH = 180

BOILERPLATE_PREFIXES = ('entered into the hearing record', 'running head')
BOILERPLATE_FRAGMENTS = (
    'united states senate',
    'committee on',
    'all rights reserved',
    'terms of use',
    'privacy policy',
    'cookie policy',
    'subscribe to',
)
FIGURE_TABLE = re.compile(r'^(figure|fig\.|table)\s+\d+', re.IGNORECASE)
BARE_DATE = re.compile(r'^\d{1,2}/\d{1,2}/\d{2,4}$')
ALL_CAPS_LINE = re.compile(r'^[A-Z0-9 \-:,.&\']+$')


def is_boilerplate(text: str) -> bool:
    low = text.lower()
    if low.startswith(BOILERPLATE_PREFIXES):
        return True
    if any(fragment in low for fragment in BOILERPLATE_FRAGMENTS):
        return True
    if low.startswith('©') or low.startswith('copyright'):
        return True
    return bool(FIGURE_TABLE.match(text) or BARE_DATE.match(text))


def is_shouting_fragment(text: str) -> bool:
    """ALL-CAPS line with fewer than 6 words"""
    return bool(ALL_CAPS_LINE.match(text)) and len(text.split()) < 6


def sanitize_title(title: Optional[str]) -> Optional[str]:
    """
    Clean a title candidate, or return None if it isn't one.

    Rejects:
    - shorter than 10 chars
    - boilerplate/legal notice text
    - ALL-CAPS fragments under 6 words
    - lowercase-start run-on fragments (>10 words, no closing punctuation)
    """
    t = collapse_whitespace(title)
    if len(t) < TITLE_MIN_LENGTH:
        return None
    if is_boilerplate(t) or is_shouting_fragment(t):
        return None
    if t[0].islower() and not re.search(r'[.!?:]$', t) and len(t.split()) > 10:
        return None
    return t[:TITLE_MAX_LENGTH]


def looks_like_title_line(line: Optional[str]) -> bool:
    """Plausible title line near the top of extracted PDF text"""
    if not line:
        return False
    s = line.strip()
    if len(s) < TITLE_MIN_LENGTH or len(s) > TITLE_LINE_MAX_LENGTH:
        return False
    if is_boilerplate(s) or is_shouting_fragment(s):
        return False
    return bool(re.search(r'[a-z]', s))


def _title_case(text: str) -> str:
    return ' '.join(w[0].upper() + w[1:] if len(w) > 3 else w for w in text.split())


def title_from_url(url: str) -> Optional[str]:
    """
    Title from the URL path: "/2024/05/vaccine-study-finds_link.pdf" → "Vaccine Study Finds Link"

    Numeric parts and parts of 3 chars or less are dropped.
    """
    try:
        path = unquote(urlparse(url).path)
    except ValueError:
        return None

    segments = [s for s in path.split('/') if s]
    if not segments:
        return None

    last = re.sub(r'\.(pdf|html?|php|aspx?)$', '', segments[-1], flags=re.IGNORECASE)
    parts = [p for p in re.split(r'[_\-\s]+', last) if p and not p.isdigit() and len(p) > 3]
    if not parts:
        return None
    return _title_case(' '.join(parts))


def choose_title_from_lines(lines: List[str], max_lines: int = 25) -> Optional[str]:
    """First title-like line in the leading lines; joins a subtitle after ':' or '-'"""
    window = lines[:max_lines]
    for i, line in enumerate(window):
        if not looks_like_title_line(line):
            continue
        title = line.strip()
        if re.search(r'[–—:\-]\s*$', title) and i + 1 < len(lines) and lines[i + 1].strip():
            title = f"{title} {lines[i + 1].strip()}"
        sane = sanitize_title(title)
        if sane:
            return sane
    return None


# =============================================================================
# PDF TEXT
# =============================================================================

XMP_BLOCKS = [
    re.compile(r'<\?xpacket.*?\?>', re.DOTALL),
    re.compile(r'<x:xmpmeta.*?</x:xmpmeta>', re.DOTALL),
    re.compile(r'<rdf:RDF.*?</rdf:RDF>', re.DOTALL),
]
PDF_AUTHOR_NOISE = re.compile(r'^(department of|division of|school of|faculty of)', re.IGNORECASE)


def clean_pdf_text(text: Optional[str]) -> str:
    """Strip embedded XMP metadata and collapse runs of blank lines"""
    cleaned = text or ''
    for pattern in XMP_BLOCKS:
        cleaned = pattern.sub('', cleaned)
    cleaned = re.sub(r'[ \t]+\n', '\n', cleaned)
    cleaned = re.sub(r'\n{3,}', '\n\n', cleaned)
    return cleaned.strip()


def clean_pdf_author(raw: Optional[str]) -> Optional[str]:
    """Strip affiliation superscripts ("MD2,3", ", 1,2"); drop department lines"""
    if not raw:
        return None
    name = raw.strip()
    name = re.sub(r'\b(MD|PhD|MS|MPH|DO|RN|DDS|DVM)\s*\d+(?:,\d+)*', r'\1', name, flags=re.IGNORECASE)
    name = re.sub(r',\s*\d+(?:,\d+)*', '', name)
    name = re.sub(r'\s+\d+(?:,\d+)*', '', name)
    name = name.strip(' ,')
    if not name or PDF_AUTHOR_NOISE.match(name):
        return None
    return name


# =============================================================================
# REFERENCES
# =============================================================================

CITATION_CUES = [
    'study', 'paper', 'report', 'according to', 'doi', 'arxiv', 'pubmed',
    'preprint', 'dataset', 'source', 'footnote', 'journal', 'survey', 'pdf',
    '§', '†',
]
BRACKETED_NUMERAL = re.compile(r'\[\s*\d+(?:\s*[,\-–]\s*\d+)*\s*\]')

BAD_HOST_PATTERNS = [
    'facebook.com', 'twitter.com', 'x.com', 'instagram.com', 'tiktok.com',
    'linkedin.com', 'pinterest.com', 'mailto:', 'javascript:', 'subscribe',
    'login', 'share', 'comment', 'utm_',
]


def has_citation_cue(text: Optional[str]) -> bool:
    """Does anchor text / its sentence look like it's citing something?"""
    if not text:
        return False
    low = text.lower()
    if BRACKETED_NUMERAL.search(low):
        return True
    return any(cue in low for cue in CITATION_CUES)


def is_bad_reference_url(url: Optional[str]) -> bool:
    if not url:
        return True
    low = url.lower()
    if not low.startswith(('http://', 'https://')):
        return True
    host = urlparse(low).netloc
    for pattern in BAD_HOST_PATTERNS:
        if pattern.endswith('.com'):
            if host == pattern or host.endswith('.' + pattern):
                return True
        elif pattern in low:
            return True
    return False


# =============================================================================
# IMAGES
# =============================================================================

PHOTO_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.webp')
ICON_HINTS = ('sprite', 'icon', 'logo', 'avatar', 'pixel', 'spacer', 'badge')


def is_processable_image(url: Optional[str]) -> bool:
    """Looks like a real photo: http(s), jpg/png/webp, not svg/gif/data/blob or an icon"""
    if not url:
        return False
    low = url.lower().strip()
    if low.startswith(('data:', 'blob:')):
        return False
    path = urlparse(low).path
    if path.endswith(('.svg', '.gif')):
        return False
    if not path.endswith(PHOTO_EXTENSIONS):
        return False
    filename = path.rsplit('/', 1)[-1]
    return not any(hint in filename for hint in ICON_HINTS)


def parse_srcset(srcset: Optional[str]) -> Optional[Tuple[str, int]]:
    """
    Highest-resolution srcset candidate as (url, width).

    "a.jpg 320w, b.jpg 1024w" → ("b.jpg", 1024); density descriptors (2x)
    are scaled by 1000 so they compare sensibly against widths.
    """
    if not srcset:
        return None
    best = None
    for candidate in srcset.split(','):
        parts = candidate.strip().split()
        if not parts:
            continue
        url = parts[0]
        width = 0
        if len(parts) > 1:
            descriptor = parts[1].lower()
            try:
                if descriptor.endswith('w'):
                    width = int(descriptor[:-1])
                elif descriptor.endswith('x'):
                    width = int(float(descriptor[:-1]) * 1000)
            except ValueError:
                width = 0
        if best is None or width > best[1]:
            best = (url, width)
    return best


# =============================================================================
# PUBLISHERS
# =============================================================================

PLATFORM_NAMES = {
    'x': 'X',
    'twitter': 'Twitter',
    'facebook': 'Facebook',
    'instagram': 'Instagram',
    'tiktok': 'TikTok',
    'youtube': 'YouTube',
    'linkedin': 'LinkedIn',
    'threads': 'Threads',
    'bluesky': 'Bluesky',
    'reddit': 'Reddit',
    'substack': 'Substack',
    'medium': 'Medium',
}
PLATFORM_ON_PATTERN = re.compile(r'\bon\s+([A-Za-z]+)\s*(?:[:|\-–—]|$)')
TITLE_SITE_SUFFIX = re.compile(r'\s[|\-–—]\s([^|\-–—]{2,40})$')


def publisher_from_title(title: Optional[str]) -> Optional[str]:
    """
    Publisher guessed from the page title.

    "Jane Doe on X: \"...\"" → "X"
    "Some headline | The Daily Planet" → "The Daily Planet"
    """
    if not title:
        return None
    t = collapse_whitespace(title)

    match = PLATFORM_ON_PATTERN.search(t)
    if match and match.group(1).lower() in PLATFORM_NAMES:
        return PLATFORM_NAMES[match.group(1).lower()]

    match = TITLE_SITE_SUFFIX.search(t)
    if match:
        site = match.group(1).strip()
        if 2 <= len(site) and len(site.split()) <= 5:
            return site
    return None
