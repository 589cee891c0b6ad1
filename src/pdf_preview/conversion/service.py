import logging

from .adapters import BlobStore, PdfiumPageRenderer, PillowEncoder
from .engine import EngineLoader, default_loader
from .errors import ConversionError, EngineUnavailable, InvalidInputType
from .interfaces import (
    PDF_MEDIA_TYPE,
    ConversionResult,
    EncoderGateway,
    EngineCheck,
    LocatorGateway,
    PageRendererGateway,
    PlaceholderStyle,
    SourceDocument,
)
from .placeholder import PlaceholderSynthesizer

logger = logging.getLogger(__name__)

FAILURE_PREFIX = "Failed to convert PDF to image: "


class ConversionStage:
    START = "start"
    VALIDATING = "validating"
    LOADING_ENGINE = "loading_engine"
    RENDERING = "rendering"
    ENCODING = "encoding"
    SYNTHESIZING_FALLBACK = "synthesizing_fallback"
    DONE = "done"
    FAILED = "failed"


class ConversionService:
    """Core domain service turning a PDF into a first-page preview image.

    The service is framework-agnostic: the HTTP API and any other front-end
    hand it a `SourceDocument` and get a `ConversionResult` back. It never
    raises; every failure comes back as an error result.

    Only an unavailable engine triggers the placeholder fallback. Render and
    encode failures are reported as errors unless `fallback_on_render_error`
    is set.
    """

    def __init__(
        self,
        loader: EngineLoader | None = None,
        renderer: PageRendererGateway | None = None,
        encoder: EncoderGateway | None = None,
        placeholders: PlaceholderSynthesizer | None = None,
        *,
        locators: LocatorGateway | None = None,
        fallback_on_render_error: bool = False,
    ) -> None:
        self._loader = loader if loader is not None else default_loader()
        self._locators = locators if locators is not None else BlobStore()
        self._renderer = renderer if renderer is not None else PdfiumPageRenderer()
        self._encoder = encoder if encoder is not None else PillowEncoder(self._locators)
        self._placeholders = placeholders if placeholders is not None else PlaceholderSynthesizer(self._encoder)
        self._fallback_on_render_error = fallback_on_render_error

    @property
    def loader(self) -> EngineLoader:
        return self._loader

    @property
    def locators(self) -> LocatorGateway:
        return self._locators

    async def convert(self, document: SourceDocument) -> ConversionResult:
        stage = ConversionStage.START
        logger.info(
            "phase=convert status=start document=%s media_type=%s size=%d",
            document.name, document.media_type, document.size,
        )
        try:
            stage = ConversionStage.VALIDATING
            if document.media_type != PDF_MEDIA_TYPE:
                raise InvalidInputType("Invalid file type. Only PDF files are supported.")

            stage = ConversionStage.LOADING_ENGINE
            try:
                engine = await self._loader.acquire()
            except EngineUnavailable as e:
                logger.warning("phase=convert stage=%s document=%s fallback=generic error=%s", stage, document.name, e)
                stage = ConversionStage.SYNTHESIZING_FALLBACK
                return self._finish(document, await self._placeholders.synthesize(document, PlaceholderStyle.GENERIC_FAILURE))

            stage = ConversionStage.RENDERING
            surface = await self._renderer.render(engine, document)

            stage = ConversionStage.ENCODING
            artifact = await self._encoder.encode(surface, document.stem)
        except InvalidInputType as e:
            return self._fail(document, stage, e)
        except ConversionError as e:
            if self._fallback_on_render_error and stage in (ConversionStage.RENDERING, ConversionStage.ENCODING):
                logger.warning("phase=convert stage=%s document=%s fallback=generic error=%s", stage, document.name, e)
                return self._finish(document, await self._placeholders.synthesize(document, PlaceholderStyle.GENERIC_FAILURE))
            return self._fail(document, stage, e)
        except Exception as e:
            logger.exception("phase=convert stage=%s document=%s unexpected error", stage, document.name)
            return self._fail(document, stage, e)

        return self._finish(document, ConversionResult.success(artifact))

    async def convert_placeholder(self, document: SourceDocument) -> ConversionResult:
        """Produce the informative preview card without touching the engine."""
        result = await self._placeholders.synthesize(document, PlaceholderStyle.INFORMATIVE_PREVIEW)
        return self._finish(document, result)

    async def check_engine(self) -> EngineCheck:
        try:
            engine = await self._loader.acquire()
        except Exception as e:
            logger.error("phase=engine_check status=failure error=%s", e)
            return EngineCheck(success=False, error=f"PDF engine test failed: {e}")
        if not callable(getattr(engine.module, "PdfDocument", None)):
            return EngineCheck(success=False, error="PDF engine is missing PdfDocument")
        logger.info("phase=engine_check status=success strategy=%s", engine.strategy)
        return EngineCheck(success=True)

    def release(self, result: ConversionResult) -> bool:
        """Revoke the locator of a result's artifact. Returns False if nothing was registered."""
        if result.file is None:
            return False
        return self._locators.revoke(result.file.url)

    def _finish(self, document: SourceDocument, result: ConversionResult) -> ConversionResult:
        if result.ok:
            logger.info("phase=convert stage=%s document=%s name=%s", ConversionStage.DONE, document.name, result.file.name)
        else:
            logger.error("phase=convert stage=%s document=%s error=%s", ConversionStage.FAILED, document.name, result.error)
        return result

    def _fail(self, document: SourceDocument, stage: str, err: Exception) -> ConversionResult:
        logger.warning("phase=convert stage=%s document=%s error_type=%s", stage, document.name, type(err).__name__)
        return self._finish(document, ConversionResult.failure(f"{FAILURE_PREFIX}{err}"))
