"""
Claim & Topic Extractor

Splits text into paragraph-aligned chunks, asks the semantic service for
topics/claims/testimonials per chunk (sequentially), and aggregates:
- general topic: plurality vote across chunks
- specific topics: top 5 by frequency
- claims: concatenated, deduplicated by normalized text
- testimonials: concatenated

A chunk whose response can't be parsed is dropped; the rest still count.
"""
import logging
from collections import Counter
from typing import List, Dict, Optional, Tuple

from ..exceptions import ExtractionParseFailure
from ..models.claim import TopicAnalysis, normalize_claim_text
from .semantic_client import SemanticService

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
DEFAULT_CHUNK_CHARS = 6000
MAX_SPECIFIC_TOPICS = 5

# (max tokens, min claims, max claims)
CLAIM_BOUNDS = [
    (2500, 5, 12),
    (5000, 8, 16),
    (9000, 12, 24),
]
CLAIM_BOUNDS_LARGE = (16, 30)


def estimate_tokens(text: str) -> int:
    return len(text or '') // CHARS_PER_TOKEN


def claim_bounds(token_len: int) -> Tuple[int, int]:
    """(min, max) claims to request for a chunk of this size"""
    for limit, low, high in CLAIM_BOUNDS:
        if token_len <= limit:
            return low, high
    return CLAIM_BOUNDS_LARGE


def chunk_text(text: str, budget: int = DEFAULT_CHUNK_CHARS) -> List[str]:
    """
    Paragraph-aligned chunks of at most `budget` characters.

    Paragraphs are packed greedily; one longer than the budget is split hard.
    """
    if not text or not text.strip():
        return []
    budget = max(1, budget)

    paragraphs = [p.strip() for p in text.split('\n') if p.strip()]
    chunks = []
    current = ''

    for paragraph in paragraphs:
        if len(paragraph) > budget:
            if current:
                chunks.append(current)
                current = ''
            for start in range(0, len(paragraph), budget):
                chunks.append(paragraph[start:start + budget])
            continue

        candidate = f"{current}\n\n{paragraph}" if current else paragraph
        if len(candidate) > budget:
            chunks.append(current)
            current = paragraph
        else:
            current = candidate

    if current:
        chunks.append(current)
    return chunks


class ClaimExtractor:
    """Chunked topic/claim extraction over a SemanticService"""

    def __init__(self, semantic_service: SemanticService, chunk_char_budget: int = DEFAULT_CHUNK_CHARS):
        self.semantic_service = semantic_service
        self.chunk_char_budget = chunk_char_budget

    async def analyze(self, text: str, testimonial_hints: Optional[List[Dict]] = None) -> TopicAnalysis:
        chunks = chunk_text(text, self.chunk_char_budget)
        analysis = TopicAnalysis(chunks_total=len(chunks))
        if not chunks:
            return analysis

        topic_votes: Counter = Counter()
        subtopic_votes: Counter = Counter()
        seen_claims = set()

        for i, chunk in enumerate(chunks):
            min_claims, max_claims = claim_bounds(estimate_tokens(chunk))
            try:
                result = await self.semantic_service.extract_topics_and_claims(
                    chunk, testimonial_hints or [], min_claims=min_claims, max_claims=max_claims
                )
            except ExtractionParseFailure as e:
                logger.warning(f"⚠️ Chunk {i + 1}/{len(chunks)} dropped (unparseable): {e}")
                analysis.chunks_failed += 1
                continue
            except Exception as e:
                logger.warning(f"⚠️ Chunk {i + 1}/{len(chunks)} dropped (service error): {e}")
                analysis.chunks_failed += 1
                continue

            topic = result.get('generalTopic')
            if isinstance(topic, str) and topic.strip():
                topic_votes[' '.join(topic.split()[:2])] += 1

            for subtopic in result.get('specificTopics') or []:
                if isinstance(subtopic, str) and subtopic.strip():
                    subtopic_votes[subtopic.strip()] += 1

            for claim in result.get('claims') or []:
                if not isinstance(claim, str):
                    continue
                normalized = normalize_claim_text(claim)
                if normalized and normalized not in seen_claims:
                    seen_claims.add(normalized)
                    analysis.claims.append(normalized)

            for testimonial in result.get('testimonials') or []:
                if isinstance(testimonial, dict) and testimonial.get('text'):
                    analysis.testimonials.append(testimonial)

        # most_common breaks ties by first insertion, i.e. the earliest chunk
        if topic_votes:
            analysis.general_topic = topic_votes.most_common(1)[0][0]
        analysis.specific_topics = [t for t, _ in subtopic_votes.most_common(MAX_SPECIFIC_TOPICS)]

        logger.info(
            f"🧠 {len(analysis.claims)} claims from {len(chunks) - analysis.chunks_failed}/{len(chunks)} chunks "
            f"(topic: {analysis.general_topic})"
        )
        return analysis
