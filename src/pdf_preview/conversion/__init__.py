"""
Domain layer for PDF preview conversion.
Provides the engine loader, page renderer, encoder, placeholder synthesizer
and the service that orchestrates them, so front-ends (HTTP or others) can
use the same core logic.
"""

from .adapters import BlobStore, PdfiumPageRenderer, PillowEncoder
from .engine import AcquisitionStrategy, EngineLoader, EngineState, default_loader
from .errors import (
    ConversionError,
    DocumentDecodeError,
    EncodeError,
    EngineUnavailable,
    InvalidInputType,
    PageAccessError,
    PlaceholderGenerationError,
    RenderExecutionError,
)
from .interfaces import (
    PDF_MEDIA_TYPE,
    ConversionResult,
    EngineCheck,
    EngineHandle,
    OutputArtifact,
    PlaceholderStyle,
    RasterSurface,
    SourceDocument,
)
from .placeholder import PlaceholderSynthesizer
from .service import ConversionService, ConversionStage
