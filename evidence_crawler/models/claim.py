"""
Claim domain models
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict


class Stance(str, Enum):
    SUPPORTS = "supports"
    REFUTES = "refutes"
    RELATED = "related"


# LLM output is free-form; map what we've seen onto the three stances
STANCE_SYNONYMS = {
    'supports': Stance.SUPPORTS,
    'support': Stance.SUPPORTS,
    'supporting': Stance.SUPPORTS,
    'supported': Stance.SUPPORTS,
    'agree': Stance.SUPPORTS,
    'agrees': Stance.SUPPORTS,
    'refutes': Stance.REFUTES,
    'refute': Stance.REFUTES,
    'refuting': Stance.REFUTES,
    'refuted': Stance.REFUTES,
    'contradicts': Stance.REFUTES,
    'disputes': Stance.REFUTES,
    'related': Stance.RELATED,
}

STANCE_MULTIPLIER = {
    Stance.SUPPORTS: 1.0,
    Stance.REFUTES: -1.0,
    Stance.RELATED: 0.5,
}

HIGH_QUALITY_DOMAINS = re.compile(r'(reuters|apnews|nature|nih|who|\.gov|\.edu)', re.IGNORECASE)


def coerce_stance(value) -> Stance:
    """Map any stance-ish value onto Stance; unknown values become RELATED."""
    if isinstance(value, Stance):
        return value
    if not value or not isinstance(value, str):
        return Stance.RELATED
    return STANCE_SYNONYMS.get(value.strip().lower(), Stance.RELATED)


def normalize_claim_text(text: str) -> str:
    """Collapse whitespace; the dedup key for claims within a run"""
    return ' '.join((text or '').split())


def compute_support_level(stance, confidence: float = 1.0, domain: Optional[str] = None) -> float:
    """
    support_level = stance multiplier × confidence × quality

    Quality gets a +0.2 boost for high-reputation domains.
    Result is clamped to [-1, 1].
    """
    stance = coerce_stance(stance)
    try:
        confidence = float(confidence)
    except (TypeError, ValueError):
        confidence = 1.0
    confidence = max(0.0, min(1.0, confidence))

    quality = 1.0
    if domain and HIGH_QUALITY_DOMAINS.search(domain):
        quality = 1.2

    level = STANCE_MULTIPLIER[stance] * confidence * quality
    return max(-1.0, min(1.0, round(level, 4)))


@dataclass
class Claim:
    """
    Atomic, independently verifiable factual statement

    veracity/confidence are populated downstream.
    """
    text: str
    id: Optional[str] = None
    veracity: Optional[float] = None
    confidence: Optional[float] = None

    def __post_init__(self):
        self.text = normalize_claim_text(self.text)


@dataclass
class ClaimLink:
    """Directed stance-carrying edge between two claims"""
    source_claim_id: str
    target_claim_id: str
    stance: Stance = Stance.RELATED
    support_level: float = 0.0

    def __post_init__(self):
        self.stance = coerce_stance(self.stance)


@dataclass
class TopicAnalysis:
    """Aggregated output of the Claim & Topic Extractor"""
    general_topic: Optional[str] = None
    specific_topics: List[str] = field(default_factory=list)
    claims: List[str] = field(default_factory=list)
    testimonials: List[Dict] = field(default_factory=list)

    # Chunk bookkeeping
    chunks_total: int = 0
    chunks_failed: int = 0
