"""Shared test fixtures for the PDF preview service."""

import io
import types

import pytest
from PIL import Image

from pdf_preview.conversion import (
    AcquisitionStrategy,
    BlobStore,
    ConversionService,
    EngineLoader,
    PdfiumPageRenderer,
    PillowEncoder,
    PlaceholderSynthesizer,
    SourceDocument,
)

# ── Helpers ────────────────────────────────────────────────────────────


def make_pdf(width: int = 200, height: int = 100, pages: int = 1) -> bytes:
    """Build a real PDF with Pillow; at 72 dpi each page is width x height points."""
    images = [Image.new("RGB", (width, height), (255, 255, 255 - 40 * i)) for i in range(pages)]
    buf = io.BytesIO()
    images[0].save(buf, format="PDF", resolution=72.0, save_all=True, append_images=images[1:])
    return buf.getvalue()


def make_document(name: str = "resume.pdf", data: bytes | None = None, media_type: str = "application/pdf") -> SourceDocument:
    return SourceDocument(name=name, data=make_pdf() if data is None else data, media_type=media_type)


class CountingStrategy:
    """Acquisition callable that records calls and can be switched to fail."""

    def __init__(self, module=None, error: Exception | None = None) -> None:
        self.module = module
        self.error = error
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.module


def failing_loader(*counters: CountingStrategy) -> EngineLoader:
    counters = counters or (CountingStrategy(error=ImportError("primary missing")), CountingStrategy(error=ImportError("alternate missing")))
    return EngineLoader([AcquisitionStrategy(f"strategy-{i}", c) for i, c in enumerate(counters)])


def fake_engine_module(document_factory) -> types.SimpleNamespace:
    return types.SimpleNamespace(PdfDocument=document_factory)


# ── Fixtures ───────────────────────────────────────────────────────────


@pytest.fixture
def pdf_document() -> SourceDocument:
    return make_document()


@pytest.fixture
def blob_store() -> BlobStore:
    return BlobStore()


@pytest.fixture
def encoder(blob_store) -> PillowEncoder:
    return PillowEncoder(blob_store)


@pytest.fixture
def placeholders(encoder) -> PlaceholderSynthesizer:
    return PlaceholderSynthesizer(encoder)


@pytest.fixture
def engine_loader():
    """A real pypdfium2 loader, isolated from the process-wide default."""
    loader = EngineLoader()
    yield loader
    loader.close()


@pytest.fixture
def service(engine_loader, blob_store, encoder, placeholders) -> ConversionService:
    return ConversionService(
        loader=engine_loader,
        renderer=PdfiumPageRenderer(),
        encoder=encoder,
        placeholders=placeholders,
        locators=blob_store,
    )
