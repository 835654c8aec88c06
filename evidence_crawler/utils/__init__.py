"""
Utility functions
"""
from .url_utils import (
    normalize_url,
    extract_domain,
    is_valid_url,
    is_pdf_url,
    is_feed_url,
    non_scrapable_media_kind,
    youtube_video_id,
)
from .json_utils import parse_json_response, repair_json

__all__ = [
    'normalize_url',
    'extract_domain',
    'is_valid_url',
    'is_pdf_url',
    'is_feed_url',
    'non_scrapable_media_kind',
    'youtube_video_id',
    'parse_json_response',
    'repair_json',
]
