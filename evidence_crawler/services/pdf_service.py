"""
PDF text/thumbnail service

- Text + metadata (title, author) via pypdf
- First-page thumbnail via the poppler `pdftocairo` binary (600x800 PNG)

Thumbnail failures are non-fatal: rasterize_first_page() returns None.
"""
import asyncio
import io
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from typing import Optional

from pypdf import PdfReader

from .heuristics import clean_pdf_text

logger = logging.getLogger(__name__)


@dataclass
class PdfExtraction:
    text: str
    title: Optional[str] = None
    author: Optional[str] = None
    pages: int = 0


class PdfService:
    """PDF text extraction (pypdf) and first-page rasterization (pdftocairo)"""

    def __init__(self, max_pages: int = 80, rasterize_timeout: float = 20.0,
                 pdftocairo_bin: str = 'pdftocairo'):
        self.max_pages = max_pages
        self.rasterize_timeout = rasterize_timeout
        self.pdftocairo_bin = pdftocairo_bin

    def _read(self, data: bytes) -> PdfExtraction:
        reader = PdfReader(io.BytesIO(data))

        pages = []
        for page in reader.pages[:self.max_pages]:
            try:
                pages.append(page.extract_text() or "")
            except Exception as e:
                logger.debug(f"Skipping unreadable PDF page: {e}")
                continue

        title = author = None
        try:
            meta = reader.metadata or {}
            title = str(meta.get('/Title') or '').strip() or None
            author = str(meta.get('/Author') or '').strip() or None
        except Exception as e:
            logger.debug(f"PDF metadata unreadable: {e}")

        return PdfExtraction(
            text=clean_pdf_text('\n'.join(pages)),
            title=title,
            author=author,
            pages=len(reader.pages),
        )

    async def extract_pdf_text(self, data: bytes) -> PdfExtraction:
        """
        Extract text and embedded metadata.

        Raises whatever pypdf raises for a corrupt file; the fetch resolver
        treats that as a soft failure.
        """
        return await asyncio.to_thread(self._read, data)

    async def rasterize_first_page(self, data: bytes) -> Optional[bytes]:
        """Render page 1 to a 600x800 PNG, or None if poppler is missing or fails"""
        if not shutil.which(self.pdftocairo_bin):
            logger.debug(f"{self.pdftocairo_bin} not installed, skipping thumbnail")
            return None

        with tempfile.TemporaryDirectory() as tmp:
            pdf_path = os.path.join(tmp, 'input.pdf')
            out_prefix = os.path.join(tmp, 'thumb')
            with open(pdf_path, 'wb') as f:
                f.write(data)

            try:
                proc = await asyncio.create_subprocess_exec(
                    self.pdftocairo_bin,
                    '-png', '-singlefile', '-f', '1', '-l', '1',
                    '-scale-to-x', '600', '-scale-to-y', '800',
                    pdf_path, out_prefix,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.PIPE,
                )
                try:
                    _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.rasterize_timeout)
                except asyncio.TimeoutError:
                    proc.kill()
                    await proc.wait()
                    logger.warning(f"⏱️ pdftocairo timed out after {self.rasterize_timeout}s")
                    return None
            except OSError as e:
                logger.warning(f"⚠️ pdftocairo failed to start: {e}")
                return None

            if proc.returncode != 0:
                logger.warning(f"⚠️ pdftocairo exited {proc.returncode}: {stderr.decode(errors='ignore')[:200]}")
                return None

            png_path = out_prefix + '.png'
            if not os.path.exists(png_path):
                return None
            with open(png_path, 'rb') as f:
                return f.read()
