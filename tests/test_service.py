import asyncio
import io
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from pdf_preview.conversion import (
    AcquisitionStrategy,
    ConversionResult,
    ConversionService,
    DocumentDecodeError,
    EncodeError,
    EngineLoader,
    EngineState,
    PdfiumPageRenderer,
    RenderExecutionError,
)
from pdf_preview.conversion.service import FAILURE_PREFIX

from conftest import CountingStrategy, failing_loader, make_document, make_pdf


def _service_with(loader, encoder, placeholders, blob_store, **kwargs) -> ConversionService:
    return ConversionService(
        loader=loader,
        renderer=kwargs.pop("renderer", PdfiumPageRenderer()),
        encoder=encoder,
        placeholders=placeholders,
        locators=blob_store,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_successful_conversion(service):
    result = await service.convert(make_document(name="resume.pdf", data=make_pdf(300, 150)))

    assert result.ok
    assert result.error is None
    assert result.image_url == result.file.url != ""
    assert result.file.name == "resume.png"
    with Image.open(io.BytesIO(result.file.data)) as decoded:
        assert decoded.size == (600, 300)


@pytest.mark.asyncio
@pytest.mark.parametrize("media_type", ["image/png", "text/plain", "", "application/x-pdf"])
async def test_non_pdf_fails_without_engine(media_type, encoder, placeholders, blob_store):
    primary = CountingStrategy(error=ImportError("should not be called"))
    loader = EngineLoader([AcquisitionStrategy("primary", primary)])
    service = _service_with(loader, encoder, placeholders, blob_store)

    result = await service.convert(make_document(name="photo.png", media_type=media_type))

    assert result.file is None
    assert result.image_url == ""
    assert result.error.startswith(FAILURE_PREFIX)
    assert "Only PDF files are supported" in result.error
    assert primary.calls == 0
    assert loader.state == EngineState.UNLOADED
    assert len(blob_store) == 0


@pytest.mark.asyncio
async def test_engine_unavailable_falls_back_to_generic_placeholder(encoder, placeholders, blob_store):
    service = _service_with(failing_loader(), encoder, placeholders, blob_store)

    result = await service.convert(make_document(name="resume.pdf"))

    assert result.ok
    assert result.file.name.endswith("_fallback.png")
    assert result.file.name == "resume_fallback.png"
    assert (result.file.width, result.file.height) == (800, 600)
    with Image.open(io.BytesIO(result.file.data)) as decoded:
        assert decoded.size == (800, 600)


@pytest.mark.asyncio
async def test_fallback_failure_is_terminal(encoder, blob_store):
    placeholders = AsyncMock()
    placeholders.synthesize.return_value = ConversionResult.failure("Fallback image creation failed: boom")
    service = _service_with(failing_loader(), encoder, placeholders, blob_store)

    result = await service.convert(make_document())

    assert not result.ok
    assert result.error == "Fallback image creation failed: boom"
    placeholders.synthesize.assert_awaited_once()


@pytest.mark.asyncio
async def test_malformed_pdf_surfaces_error_without_fallback(service, blob_store):
    result = await service.convert(make_document(data=b"definitely not a pdf"))

    assert not result.ok
    assert result.error.startswith(FAILURE_PREFIX)
    assert len(blob_store) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [RenderExecutionError("bad page"), DocumentDecodeError("corrupt")])
async def test_render_errors_do_not_fall_back(error, engine_loader, encoder, placeholders, blob_store):
    renderer = AsyncMock()
    renderer.render.side_effect = error
    service = _service_with(engine_loader, encoder, placeholders, blob_store, renderer=renderer)

    result = await service.convert(make_document())

    assert result.file is None
    assert result.error == f"{FAILURE_PREFIX}{error}"


@pytest.mark.asyncio
async def test_encode_error_does_not_fall_back(engine_loader, blob_store, placeholders):
    encoder = AsyncMock()
    encoder.encode.side_effect = EncodeError("Failed to create image blob from surface")
    service = _service_with(engine_loader, encoder, placeholders, blob_store)

    result = await service.convert(make_document())

    assert not result.ok
    assert "Failed to create image blob" in result.error


@pytest.mark.asyncio
async def test_opt_in_fallback_for_render_errors(engine_loader, encoder, placeholders, blob_store):
    renderer = AsyncMock()
    renderer.render.side_effect = RenderExecutionError("bad page")
    service = _service_with(
        engine_loader, encoder, placeholders, blob_store, renderer=renderer, fallback_on_render_error=True
    )

    result = await service.convert(make_document(name="cv.pdf"))

    assert result.ok
    assert result.file.name == "cv_fallback.png"


@pytest.mark.asyncio
async def test_unexpected_loader_error_is_reported(encoder, placeholders, blob_store):
    loader = AsyncMock()
    loader.acquire.side_effect = RuntimeError("worker pool exploded")
    service = _service_with(loader, encoder, placeholders, blob_store)

    result = await service.convert(make_document())

    assert not result.ok
    assert "worker pool exploded" in result.error


@pytest.mark.asyncio
async def test_concurrent_conversions_load_engine_once(encoder, placeholders, blob_store):
    import pypdfium2

    primary = CountingStrategy(error=ImportError("primary"))
    alternate = CountingStrategy(pypdfium2)
    loader = EngineLoader([AcquisitionStrategy("primary", primary), AcquisitionStrategy("alternate", alternate)])
    service = _service_with(loader, encoder, placeholders, blob_store)

    first, second = await asyncio.gather(service.convert(make_document()), service.convert(make_document()))

    assert first.ok and second.ok
    assert (primary.calls, alternate.calls) == (1, 1)
    loader.close()


@pytest.mark.asyncio
async def test_concurrent_conversions_share_engine_failure(encoder, placeholders, blob_store):
    primary = CountingStrategy(error=ImportError("primary"))
    alternate = CountingStrategy(error=ImportError("alternate"))
    service = _service_with(failing_loader(primary, alternate), encoder, placeholders, blob_store)

    first, second = await asyncio.gather(service.convert(make_document()), service.convert(make_document()))

    assert first.file.name == second.file.name == "resume_fallback.png"
    assert (primary.calls, alternate.calls) == (1, 1)


@pytest.mark.asyncio
async def test_ready_engine_keeps_working_after_simulated_failure(encoder, placeholders, blob_store):
    import pypdfium2

    primary = CountingStrategy(pypdfium2)
    loader = EngineLoader([AcquisitionStrategy("primary", primary)])
    service = _service_with(loader, encoder, placeholders, blob_store)
    assert (await service.convert(make_document())).ok

    primary.error = ImportError("simulated")
    result = await service.convert(make_document())

    assert result.ok
    assert result.file.name == "resume.png"
    loader.close()


@pytest.mark.asyncio
async def test_repeated_conversion_is_structurally_equal(service):
    document = make_document(name="letter.pdf", data=make_pdf(210, 297))
    first = await service.convert(document)
    second = await service.convert(document)

    assert first.file.name == second.file.name == "letter.png"
    assert first.file is not second.file
    assert first.image_url != second.image_url
    assert first.file.size > 0 and second.file.size > 0
    assert (first.file.width, first.file.height) == (second.file.width, second.file.height) == (420, 594)


@pytest.mark.asyncio
async def test_convert_placeholder_skips_engine(encoder, placeholders, blob_store):
    primary = CountingStrategy(error=ImportError("unused"))
    loader = EngineLoader([AcquisitionStrategy("primary", primary)])
    service = _service_with(loader, encoder, placeholders, blob_store)

    result = await service.convert_placeholder(make_document(name="resume.pdf"))

    assert result.file.name == "resume_preview.png"
    assert (result.file.width, result.file.height) == (800, 600)
    assert primary.calls == 0


@pytest.mark.asyncio
async def test_check_engine(service):
    check = await service.check_engine()
    assert check.success
    assert check.error is None


@pytest.mark.asyncio
async def test_check_engine_reports_failure(encoder, placeholders, blob_store):
    service = _service_with(failing_loader(), encoder, placeholders, blob_store)

    check = await service.check_engine()

    assert not check.success
    assert check.error.startswith("PDF engine test failed")


@pytest.mark.asyncio
async def test_release_revokes_locator(service, blob_store):
    result = await service.convert(make_document())
    assert result.image_url in blob_store

    assert service.release(result) is True
    assert result.image_url not in blob_store
    assert service.release(result) is False


def test_default_collaborators_are_wired():
    service = ConversionService()
    assert service.locators is not None
    assert service.loader is not None
