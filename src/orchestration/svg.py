"""SVG extraction from free-form completions.

A completion either yields SVG markup or fails loudly; non-SVG text is never
passed through as if it were a drawing.
"""

import re

from shared.errors import SvgExtractionError
from shared.logging import get_logger

logger = get_logger(__name__)

CODE_BLOCK_PATTERN = re.compile(r"```(?:svg|xml)?\s*([\s\S]*?)```")
# Greedy on purpose: sibling <svg> elements are captured together
SVG_SPAN_PATTERN = re.compile(r"<svg\b[\s\S]*</svg>", re.IGNORECASE)

PREVIEW_LENGTH = 200


def content_preview(content: str, limit: int = PREVIEW_LENGTH) -> str:
    """First ``limit`` characters, with an ellipsis when truncated."""
    if len(content) > limit:
        return f"{content[:limit]}..."
    return content


def extract_svg(content: str) -> str:
    """
    Pull SVG markup out of an LLM response.

    The first fenced code block (optionally tagged ``svg`` or ``xml``) that
    holds an SVG element wins and its trimmed contents are returned. Blocks
    without SVG are skipped; if none qualifies, the span from the first
    ``<svg`` to the last ``</svg>`` in the whole response is returned. Either
    way a closing ``</svg>`` tag must be present.

    Args:
        content: Raw completion text

    Returns:
        The SVG markup

    Raises:
        SvgExtractionError: If no complete SVG element is found
    """
    for block in CODE_BLOCK_PATTERN.finditer(content):
        candidate = block.group(1).strip()
        if SVG_SPAN_PATTERN.search(candidate):
            return candidate

    span = SVG_SPAN_PATTERN.search(content)
    if span is None:
        logger.warning(
            "SVG extraction failed - no valid SVG tags found in response",
            content_length=len(content),
            content_preview=content_preview(content)
        )
        raise SvgExtractionError()

    return span.group(0).strip()
