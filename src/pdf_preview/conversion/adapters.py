import asyncio
import base64
import io
import logging
import secrets
from typing import Any

from PIL import Image

from .errors import (
    DocumentDecodeError,
    EncodeError,
    InvalidInputType,
    PageAccessError,
    RenderExecutionError,
)
from .interfaces import (
    PDF_MEDIA_TYPE,
    Blob,
    EncoderGateway,
    EngineHandle,
    LocatorGateway,
    OutputArtifact,
    PageRendererGateway,
    RasterSurface,
    SourceDocument,
)

logger = logging.getLogger(__name__)

BLOB_PREFIX = "blob:pdf-preview/"

_MEDIA_TYPES = {
    "PNG": ("image/png", ".png"),
    "JPEG": ("image/jpeg", ".jpg"),
    "WEBP": ("image/webp", ".webp"),
}


class BlobStore(LocatorGateway):
    """Process-local registry mapping revocable locators to encoded bytes."""

    def __init__(self) -> None:
        self._blobs: dict[str, Blob] = {}

    @staticmethod
    def new_token() -> str:
        raw = secrets.token_bytes(32)
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")

    @staticmethod
    def url_for(token: str) -> str:
        return BLOB_PREFIX + token

    @staticmethod
    def token_of(url: str) -> str:
        if not url.startswith(BLOB_PREFIX):
            raise KeyError(url)
        return url.removeprefix(BLOB_PREFIX)

    def register(self, data: bytes, media_type: str) -> str:
        url = self.url_for(self.new_token())
        self._blobs[url] = Blob(data=data, media_type=media_type)
        return url

    def resolve(self, url: str) -> Blob:
        try:
            return self._blobs[url]
        except KeyError:
            raise KeyError(f"unknown or revoked locator: {url}") from None

    def revoke(self, url: str) -> bool:
        return self._blobs.pop(url, None) is not None

    def __contains__(self, url: object) -> bool:
        return url in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)


class PdfiumPageRenderer(PageRendererGateway):
    def __init__(self, *, scale: float = 2.0) -> None:
        self._scale = scale

    async def render(self, engine: EngineHandle, document: SourceDocument) -> RasterSurface:
        if document.media_type != PDF_MEDIA_TYPE:
            raise InvalidInputType(f"Invalid file type {document.media_type!r}. Only PDF files are supported.")
        logger.info("phase=render status=start document=%s size=%d", document.name, document.size)
        try:
            surface = await engine.run(self._render_first_page, engine.module, document.data)
        except Exception as e:
            logger.warning("phase=render status=failure document=%s error=%s", document.name, e)
            raise
        logger.info("phase=render status=success document=%s width=%d height=%d", document.name, surface.width, surface.height)
        return surface

    def _render_first_page(self, pdfium: Any, data: bytes) -> RasterSurface:
        try:
            pdf = pdfium.PdfDocument(data)
        except Exception as e:
            raise DocumentDecodeError(f"Could not decode PDF document: {e}") from e
        try:
            if len(pdf) == 0:
                raise PageAccessError("PDF document has no pages")
            try:
                page = pdf[0]
            except Exception as e:
                raise PageAccessError(f"Could not load first page: {e}") from e
            try:
                return self._rasterize(page)
            finally:
                page.close()
        finally:
            pdf.close()

    def _rasterize(self, page: Any) -> RasterSurface:
        try:
            page_width, page_height = page.get_size()
        except Exception as e:
            raise PageAccessError(f"Could not read page size: {e}") from e
        width = int(page_width * self._scale)
        height = int(page_height * self._scale)
        if width <= 0 or height <= 0:
            raise PageAccessError(f"Page has an empty viewport ({page_width}x{page_height})")

        try:
            bitmap = page.render(
                scale=self._scale,
                draw_annots=True,
                no_smoothtext=False,
                no_smoothimage=False,
                no_smoothpath=False,
            )
            try:
                image = bitmap.to_pil()
                # Copy out of the bitmap buffer before it is released.
                if image.size != (width, height):
                    image = image.crop((0, 0, width, height))
                else:
                    image = image.copy()
            finally:
                bitmap.close()
        except Exception as e:
            raise RenderExecutionError(f"Page rendering failed: {e}") from e
        return RasterSurface(image=image, width=width, height=height, scale=self._scale)


class PillowEncoder(EncoderGateway):
    """Encode raster surfaces with Pillow and register the bytes as blobs.

    `quality` only affects lossy formats; PNG ignores it.
    """

    def __init__(self, locators: LocatorGateway, *, image_format: str = "PNG", quality: int = 90) -> None:
        image_format = image_format.upper()
        if image_format not in _MEDIA_TYPES:
            raise ValueError(f"unsupported image format: {image_format}")
        self._locators = locators
        self._format = image_format
        self._quality = quality

    @property
    def extension(self) -> str:
        return _MEDIA_TYPES[self._format][1]

    @property
    def media_type(self) -> str:
        return _MEDIA_TYPES[self._format][0]

    async def encode(self, surface: RasterSurface, stem: str, suffix: str = "") -> OutputArtifact:
        name = f"{stem}{suffix}{self.extension}"
        logger.info("phase=encode status=start name=%s format=%s", name, self._format)
        try:
            data = await asyncio.to_thread(self._serialize, surface.image)
        except EncodeError:
            logger.warning("phase=encode status=failure name=%s", name)
            raise
        except Exception as e:
            logger.warning("phase=encode status=failure name=%s error=%s", name, e)
            raise EncodeError(f"Failed to encode image: {e}") from e
        if not data:
            logger.warning("phase=encode status=failure name=%s error=empty stream", name)
            raise EncodeError("Failed to create image blob from surface")

        url = self._locators.register(data, self.media_type)
        logger.info("phase=encode status=success name=%s bytes=%d", name, len(data))
        return OutputArtifact(
            name=name,
            data=data,
            media_type=self.media_type,
            width=surface.width,
            height=surface.height,
            url=url,
        )

    def _serialize(self, image: Image.Image) -> bytes:
        buf = io.BytesIO()
        if self._format == "PNG":
            image.save(buf, format="PNG")
        else:
            if self._format == "JPEG" and image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            image.save(buf, format=self._format, quality=self._quality)
        return buf.getvalue()
