#!/usr/bin/env python3
"""
Evidence Crawler
================

Ingests a task URL, extracts its claims, maps them to web evidence and
recursively ingests the references.

Usage:
    python -m evidence_crawler.run_crawler https://example.com/article
    python -m evidence_crawler.run_crawler URL --name "Display name" --max-depth 1
    python -m evidence_crawler.run_crawler URL --kind reference
    python -m evidence_crawler.run_crawler URL --dry-run     # in-memory store, no database

Ctrl-C stops the crawl after the current node; already stored nodes remain.
"""
import argparse
import asyncio
import logging
import signal
import sys

from dotenv import load_dotenv

from .config.database import create_postgres_pool
from .config.settings import get_settings
from .models.content import ContentKind
from .models.crawl import CrawlContext
from .repositories import InMemoryPersistenceGateway, PostgresPersistenceGateway
from .services.claim_extractor import ClaimExtractor
from .services.content_extractor import ContentExtractor
from .services.crawl_controller import CrawlController
from .services.evidence_mapper import EvidenceMapper
from .services.fetch_resolver import FetchResolver
from .services.semantic_client import OpenAISemanticService

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('evidence-crawler')


def build_controller(gateway, settings) -> CrawlController:
    semantic = OpenAISemanticService(settings=settings)
    return CrawlController(
        resolver=FetchResolver(settings=settings),
        extractor=ContentExtractor(settings=settings),
        claim_extractor=ClaimExtractor(semantic, chunk_char_budget=settings.chunk_char_budget),
        evidence_mapper=EvidenceMapper(semantic),
        gateway=gateway,
        settings=settings,
    )


async def run(args) -> int:
    settings = get_settings()
    max_depth = settings.max_depth if args.max_depth is None else args.max_depth
    ctx = CrawlContext(max_depth=max(0, max_depth))

    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, ctx.cancel)
    except NotImplementedError:
        pass  # Windows event loops

    pool = None
    if args.dry_run:
        gateway = InMemoryPersistenceGateway()
    else:
        pool = await create_postgres_pool(settings)
        gateway = PostgresPersistenceGateway(pool)
        await gateway.ensure_schema()

    try:
        controller = build_controller(gateway, settings)
        content_id = await controller.ingest(args.url, name_hint=args.name, kind=args.kind, ctx=ctx)
    finally:
        if pool is not None:
            await pool.close()

    if args.dry_run:
        logger.info(
            f"📊 Dry run: {len(gateway.contents)} contents, {len(gateway.claims)} claims, "
            f"{len(gateway.claim_links)} claim links"
        )

    if content_id is None:
        logger.warning(f"❌ Nothing stored for {args.url}")
        return 1

    print(content_id)
    return 0


def main():
    parser = argparse.ArgumentParser(description='Recursive content ingestion and evidence mapping')
    parser.add_argument('url', help='Task URL to ingest')
    parser.add_argument('--name', help='Display name hint (used as title if longer than 5 chars)')
    parser.add_argument('--kind', choices=[k.value for k in ContentKind], default=ContentKind.TASK.value,
                        help='Content kind of the seed (default: task)')
    parser.add_argument('--max-depth', type=int, default=None,
                        help='Recursion depth bound (default: MAX_DEPTH setting, 2)')
    parser.add_argument('--dry-run', action='store_true',
                        help='Keep results in memory instead of PostgreSQL')
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args)))


if __name__ == '__main__':
    main()
