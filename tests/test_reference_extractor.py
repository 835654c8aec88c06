"""
Tests for DOM and inline reference extraction.
"""

import json

from evidence_crawler.models.content import ReferenceOrigin
from evidence_crawler.services.reference_extractor import (
    extract_dom_references,
    extract_inline_references,
    format_url_for_title,
)
from evidence_crawler.utils.html_utils import make_soup


def page(article: str, outside: str = '', head: str = '') -> str:
    return f"<html><head>{head}</head><body>{outside}<article>{article}</article></body></html>"


# =============================================================================
# DOM references
# =============================================================================

class TestDomReferences:

    def test_citation_anchor_in_running_text(self):
        soup = make_soup(page(
            '<p>According to <a href="https://cdc.gov/sleep">the CDC report</a>, adults need more sleep.</p>'
        ))
        refs = extract_dom_references(soup)
        assert [r.url for r in refs] == ["https://cdc.gov/sleep"]
        assert refs[0].title == "the CDC report"
        assert refs[0].origin == ReferenceOrigin.DOM

    def test_bracketed_numeral_is_a_cue(self):
        soup = make_soup(page('<p>Recall dropped by a third <a href="https://example.org/ref3">[3]</a>.</p>'))
        assert [r.url for r in extract_dom_references(soup)] == ["https://example.org/ref3"]

    def test_anchor_without_cue_is_ignored(self):
        soup = make_soup(page('<p>Read <a href="https://example.org/about">more about us</a>.</p>'))
        assert extract_dom_references(soup) == []

    def test_chrome_and_share_blocks_are_excluded(self):
        soup = make_soup(page(
            '<div class="share"><p>Share this study <a href="https://example.org/study-share">here</a></p></div>'
            '<footer><p>Our <a href="https://example.org/report-footer">annual report</a></p></footer>'
            '<div><a href="https://example.org/study-bare">Study</a></div>'
        ))
        assert extract_dom_references(soup) == []

    def test_anchors_outside_content_container_are_ignored(self):
        soup = make_soup(page(
            '<p>A <a href="https://example.org/inside-study">new study</a> found.</p>',
            outside='<p>Another <a href="https://example.org/outside-study">study</a>.</p>',
        ))
        assert [r.url for r in extract_dom_references(soup)] == ["https://example.org/inside-study"]

    def test_www_and_trailing_slash_variant_is_deduplicated(self):
        soup = make_soup(page(
            '<p>A <a href="https://journals.example.org/study">new study</a> found this.</p>'
            '<p>The <a href="https://www.journals.example.org/study/">same study</a> says more.</p>'
        ))
        assert [r.url for r in extract_dom_references(soup)] == ["https://journals.example.org/study"]

    def test_relative_links_are_resolved(self):
        soup = make_soup(page('<p>The <a href="/papers/sleep">full paper</a> is online.</p>'))
        refs = extract_dom_references(soup, base_url="https://journals.example.org/news/item")
        assert [r.url for r in refs] == ["https://journals.example.org/papers/sleep"]

    def test_json_ld_citations(self):
        ld = {
            "@type": "ScholarlyArticle",
            "citation": [
                {"@type": "CreativeWork", "name": "Cohort study", "url": "https://example.org/cohort"},
                "https://example.org/plain",
            ],
        }
        soup = make_soup(page('<p>No links here.</p>',
                              head=f'<script type="application/ld+json">{json.dumps(ld)}</script>'))
        refs = extract_dom_references(soup)
        assert [r.url for r in refs] == ["https://example.org/cohort", "https://example.org/plain"]
        assert refs[0].title == "Cohort study"
        assert refs[1].title == "plain"

    def test_duplicates_and_cap(self):
        anchors = ''.join(
            f'<p>See the <a href="https://example.org/study-{i % 4}">study {i}</a>.</p>' for i in range(10)
        )
        refs = extract_dom_references(make_soup(page(anchors)), max_results=3)
        assert [r.url for r in refs] == [
            "https://example.org/study-0", "https://example.org/study-1", "https://example.org/study-2",
        ]


# =============================================================================
# Inline references
# =============================================================================

class TestInlineReferences:

    def test_identifier_urls_with_names(self):
        text = (
            "See https://arxiv.org/abs/2101.00001, the registry entry "
            "https://pubmed.ncbi.nlm.nih.gov/12345678/ and https://doi.org/10.1234/abc."
        )
        refs = extract_inline_references(text)
        assert [(r.url, r.title) for r in refs] == [
            ("https://doi.org/10.1234/abc", "DOI: 10.1234/abc"),
            ("https://arxiv.org/abs/2101.00001", "arXiv: 2101.00001"),
            ("https://pubmed.ncbi.nlm.nih.gov/12345678/", "PubMed: 12345678"),
        ]

    def test_bare_doi_is_resolved_and_deduplicated(self):
        refs = extract_inline_references("doi: 10.1234/abc (also https://doi.org/10.1234/abc)")
        assert [r.url for r in refs] == ["https://doi.org/10.1234/abc"]

    def test_cap(self):
        text = ' '.join(f"https://doi.org/10.1234/item{i}" for i in range(5))
        assert len(extract_inline_references(text, max_results=2)) == 2

    def test_empty_text(self):
        assert extract_inline_references('') == []


def test_format_url_for_title():
    assert format_url_for_title("https://example.org/news/sleep-and_memory") == "news sleep and memory"
    assert format_url_for_title("https://example.org/") == "example.org"
