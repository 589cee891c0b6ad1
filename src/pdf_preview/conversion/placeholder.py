"""
Synthesized placeholder images.

Used when the rendering engine cannot be loaded (generic failure card) or
when the caller explicitly asks for a card instead of a real render
(informative preview). Both layouts are fixed-size and deterministic for a
given document name and size.
"""

import asyncio
import logging

from PIL import Image, ImageDraw, ImageFont

from .errors import PlaceholderGenerationError
from .interfaces import ConversionResult, EncoderGateway, PlaceholderStyle, RasterSurface, SourceDocument

logger = logging.getLogger(__name__)

PLACEHOLDER_WIDTH = 800
PLACEHOLDER_HEIGHT = 600

WHITE = "#ffffff"
BLACK = "#000000"
ICON_RED = "#e74c3c"
TEXT_DARK = "#2c3e50"
FRAME_GREY = "#bdc3c7"


def _font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    return ImageFont.load_default(size=size)


def _draw_generic_failure(document: SourceDocument) -> Image.Image:
    image = Image.new("RGB", (PLACEHOLDER_WIDTH, PLACEHOLDER_HEIGHT), WHITE)
    draw = ImageDraw.Draw(image)
    cx = PLACEHOLDER_WIDTH / 2
    cy = PLACEHOLDER_HEIGHT / 2
    # "ms" anchors each line at its horizontal middle and baseline.
    draw.text((cx, cy - 20), "PDF Preview", fill=BLACK, font=_font(24), anchor="ms")
    body = _font(16)
    draw.text((cx, cy + 20), f"File: {document.name}", fill=BLACK, font=body, anchor="ms")
    draw.text((cx, cy + 50), "PDF to image conversion failed", fill=BLACK, font=body, anchor="ms")
    draw.text((cx, cy + 80), "Using fallback preview", fill=BLACK, font=body, anchor="ms")
    return image


def _draw_informative_preview(document: SourceDocument) -> Image.Image:
    image = Image.new("RGB", (PLACEHOLDER_WIDTH, PLACEHOLDER_HEIGHT), WHITE)
    draw = ImageDraw.Draw(image)

    # document icon
    draw.rectangle((50, 50, 149, 169), fill=ICON_RED)
    draw.text((100, 120), "PDF", fill=WHITE, font=_font(48), anchor="ms")

    draw.text((200, 80), "PDF Document", fill=TEXT_DARK, font=_font(24), anchor="ls")
    body = _font(16)
    lines = [
        f"File: {document.name}",
        f"Size: {document.size / 1024:.1f} KB",
        "Preview not available",
        "Using placeholder image",
    ]
    for i, line in enumerate(lines):
        draw.text((200, 110 + 25 * i), line, fill=TEXT_DARK, font=body, anchor="ls")

    draw.rectangle((180, 60, 579, 209), outline=FRAME_GREY, width=2)
    return image


_LAYOUTS = {
    PlaceholderStyle.GENERIC_FAILURE: _draw_generic_failure,
    PlaceholderStyle.INFORMATIVE_PREVIEW: _draw_informative_preview,
}

_FAILURE_MESSAGES = {
    PlaceholderStyle.GENERIC_FAILURE: "Fallback image creation failed",
    PlaceholderStyle.INFORMATIVE_PREVIEW: "Failed to create preview image",
}


class PlaceholderSynthesizer:
    def __init__(self, encoder: EncoderGateway) -> None:
        self._encoder = encoder

    def draw(self, document: SourceDocument, style: PlaceholderStyle) -> RasterSurface:
        image = _LAYOUTS[style](document)
        return RasterSurface(image=image, width=image.width, height=image.height)

    async def synthesize(self, document: SourceDocument, style: PlaceholderStyle) -> ConversionResult:
        """Draw and encode a placeholder; failures come back as an error result, not an exception."""
        logger.info("phase=placeholder status=start document=%s style=%s", document.name, style.name.lower())
        try:
            surface = await asyncio.to_thread(self.draw, document, style)
            artifact = await self._encoder.encode(surface, document.stem, style.suffix)
        except Exception as e:
            error = PlaceholderGenerationError(f"{_FAILURE_MESSAGES[style]}: {e}")
            logger.error("phase=placeholder status=failure document=%s error=%s", document.name, error)
            return ConversionResult.failure(str(error))
        logger.info("phase=placeholder status=success name=%s", artifact.name)
        return ConversionResult.success(artifact)
