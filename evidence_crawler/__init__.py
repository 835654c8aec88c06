"""
evidence_crawler - Recursive content ingestion and evidence mapping

Pipeline:
- FetchResolver: direct fetch → headless render → archive snapshot → PDF text
- ContentExtractor: text, title, authors, publisher, image, references
- ClaimExtractor: token-bounded chunks → topic, subtopics, claims, testimonials
- EvidenceMapper: claim → search queries → ranked sources → stance
- CrawlController: depth-bounded recursion with a per-run visited set
"""

__version__ = "0.1.0"
