"""Page loading and page-range selection."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import PageSelectionError
from .types import PageDescriptor
from .utils.files import data_url

logger = logging.getLogger(__name__)

MAX_PAGE_DIM = 4096
_SELECTION_PATTERN = re.compile(r"^\s*\d+(\s*-\s*\d+)?(\s*,\s*\d+(\s*-\s*\d+)?)*\s*$")


@dataclass(frozen=True, slots=True)
class PageSelection:
    valid: bool
    pages: List[int] = field(default_factory=list)
    error: Optional[str] = None


def parse_page_input(text: str, max_page: int) -> Optional[List[int]]:
    """Parse "1,2,4" or "1-3,6" into sorted unique 1-based page numbers.

    Returns ``None`` when the text is malformed or references a page outside
    ``1..max_page``.
    """
    trimmed = text.strip()
    if not trimmed or not _SELECTION_PATTERN.match(trimmed):
        return None

    pages: set[int] = set()
    for part in trimmed.split(","):
        part = part.strip()
        if "-" in part:
            start_text, end_text = part.split("-", 1)
            start, end = int(start_text), int(end_text)
            if start < 1 or end > max_page or start > end:
                return None
            pages.update(range(start, end + 1))
        else:
            number = int(part)
            if number < 1 or number > max_page:
                return None
            pages.add(number)
    return sorted(pages)


def parse_page_input_detailed(text: str, max_page: int) -> PageSelection:
    """Like :func:`parse_page_input` but with a human-readable error."""
    if not text.strip():
        return PageSelection(valid=False, error="Page selection is empty")
    if max_page < 1:
        return PageSelection(valid=False, error="There are no pages to select")
    pages = parse_page_input(text, max_page)
    if pages is None:
        return PageSelection(valid=False, error="Invalid format. Examples: 1,2,4 or 1-3,6")
    return PageSelection(valid=True, pages=pages)


def format_page_range(pages: Iterable[int]) -> str:
    """Collapse page numbers into a readable string such as "1-3, 5, 7-9"."""
    ordered = sorted(pages)
    if not ordered:
        return ""

    ranges: List[str] = []
    start = end = ordered[0]
    for number in ordered[1:] + [None]:
        if number is not None and number == end + 1:
            end = number
            continue
        if start == end:
            ranges.append(f"{start}")
        elif end == start + 1:
            ranges.append(f"{start}, {end}")
        else:
            ranges.append(f"{start}-{end}")
        if number is not None:
            start = end = number
    return ", ".join(ranges)


def select_pages(pages: Sequence[PageDescriptor], selection: str | None) -> List[PageDescriptor]:
    """Return the pages named by a 1-based selection string (all pages when empty)."""
    if not selection or not selection.strip():
        return list(pages)
    max_number = max((page.number for page in pages), default=0)
    parsed = parse_page_input_detailed(selection, max_number)
    if not parsed.valid:
        raise PageSelectionError(parsed.error or "Invalid page selection")
    wanted = set(parsed.pages)
    return [page for page in pages if page.number in wanted]


def load_pages(paths: Iterable[str | Path]) -> List[PageDescriptor]:
    """Read page images in order and wrap them as :class:`PageDescriptor` objects."""
    pages: List[PageDescriptor] = []
    for index, raw_path in enumerate(paths):
        path = Path(raw_path)
        if not path.exists():
            raise FileNotFoundError(f"Page image not found: {path}")
        payload, mime = _prepare_page_image(path, path.read_bytes())
        pages.append(PageDescriptor(index=index, image_data=data_url(payload, mime), source_path=str(path)))
        logger.debug("Loaded page %d from %s (%d bytes)", index + 1, path, len(payload))
    return pages


def _prepare_page_image(path: Path, raw_bytes: bytes) -> tuple[bytes, str]:
    """Normalise orientation, colour mode and size so the model receives a sane image."""
    try:
        with Image.open(BytesIO(raw_bytes)) as image:
            if getattr(image, "n_frames", 1) > 1:
                image.seek(0)

            image = ImageOps.exif_transpose(image)
            if image.mode not in {"RGB", "RGBA"}:
                image = image.convert("RGBA" if "A" in image.getbands() else "RGB")

            if max(image.size) > MAX_PAGE_DIM:
                image.thumbnail((MAX_PAGE_DIM, MAX_PAGE_DIM), Image.LANCZOS)

            has_alpha = "A" in image.getbands()
            output = BytesIO()
            if has_alpha:
                image.save(output, format="PNG", optimize=True)
                return output.getvalue(), "image/png"
            image.save(output, format="JPEG", optimize=True, quality=90)
            return output.getvalue(), "image/jpeg"
    except (UnidentifiedImageError, OSError) as exc:
        raise PageSelectionError(f"{path} is not a readable image: {exc}") from exc
