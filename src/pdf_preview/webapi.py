import logging
import os
import re

from fastapi import FastAPI, File, HTTPException, Query, UploadFile, status
from fastapi.responses import JSONResponse, Response

from pdf_preview.conversion import (
    BlobStore,
    ConversionService,
    EngineLoader,
    PdfiumPageRenderer,
    PillowEncoder,
    PlaceholderSynthesizer,
    SourceDocument,
)
from pdf_preview.utils import format_size

app = FastAPI(
    title="PDF Preview Service",
    version=os.getenv("PDF_PREVIEW_VERSION", "0.1.0"),
    description="RESTful API rendering the first page of a PDF into a preview image.",
)

# Global configuration defaults
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "20"))
ALLOWED_MIME = set(os.getenv("ALLOWED_MIME", "application/pdf").split(","))
RENDER_SCALE = float(os.getenv("RENDER_SCALE", "2.0"))
PREVIEW_FORMAT = os.getenv("PREVIEW_FORMAT", "PNG")
PREVIEW_QUALITY = int(os.getenv("PREVIEW_QUALITY", "90"))
ENGINE_WORKERS = int(os.getenv("ENGINE_WORKERS", "1"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logger = logging.getLogger(__name__)

SERVICE: ConversionService | None = None

# Unpadded base64url of 32 random bytes, as issued by BlobStore.
_TOKEN_RE = re.compile(r"[A-Za-z0-9_-]{43}")


def build_service() -> ConversionService:
    locators = BlobStore()
    encoder = PillowEncoder(locators, image_format=PREVIEW_FORMAT, quality=PREVIEW_QUALITY)
    return ConversionService(
        loader=EngineLoader(workers=ENGINE_WORKERS),
        renderer=PdfiumPageRenderer(scale=RENDER_SCALE),
        encoder=encoder,
        placeholders=PlaceholderSynthesizer(encoder),
        locators=locators,
    )


def _service() -> ConversionService:
    if SERVICE is None:
        raise HTTPException(status_code=503, detail={"code": "not_ready", "message": "service not started"})
    return SERVICE


def _locator_from_token(token: str) -> str:
    if not _TOKEN_RE.fullmatch(token):
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "preview not found"})
    return BlobStore.url_for(token)


@app.on_event("startup")
async def _startup() -> None:
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    global SERVICE
    SERVICE = build_service()


@app.on_event("shutdown")
async def _shutdown() -> None:
    global SERVICE
    if SERVICE is not None:
        SERVICE.loader.close()
        SERVICE = None


@app.get("/health")
def health() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "ok"}


@app.get("/engine")
async def engine_check() -> JSONResponse:
    """Load the rendering engine if needed and report whether it is usable."""
    check = await _service().check_engine()
    return JSONResponse(content={"success": check.success, "error": check.error})


@app.post("/previews", status_code=status.HTTP_201_CREATED)
async def create_preview(
    file: UploadFile = File(...),
    mode: str = Query("render", pattern="^(render|placeholder)$"),
) -> JSONResponse:
    """Convert an uploaded PDF into a first-page preview image.

    Accepts multipart/form-data with a single required part named "file".
    `mode=placeholder` skips rendering and returns the informative preview card.
    The image is served from `links.image` until it is deleted.
    """
    service = _service()
    content_type = (file.content_type or "").strip().lower()
    if ALLOWED_MIME and content_type not in ALLOWED_MIME:
        raise HTTPException(status_code=415, detail={"code": "unsupported_media_type", "message": f"content-type {file.content_type} not allowed"})

    max_bytes = MAX_UPLOAD_MB * 1024 * 1024
    # Read one byte past the limit to detect oversize uploads without buffering them whole.
    data = await file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise HTTPException(status_code=413, detail={"code": "payload_too_large", "message": f"upload exceeds {format_size(max_bytes)}"})

    document = SourceDocument(name=file.filename or "upload.pdf", data=data, media_type=content_type)
    if mode == "placeholder":
        result = await service.convert_placeholder(document)
    else:
        result = await service.convert(document)

    if result.file is None:
        raise HTTPException(status_code=422, detail={"code": "conversion_failed", "message": result.error})

    token = BlobStore.token_of(result.image_url)
    body = result.to_dict()
    body["id"] = token
    body["links"] = {"image": f"/previews/{token}"}
    return JSONResponse(status_code=status.HTTP_201_CREATED, content=body, headers={"Location": f"/previews/{token}"})


@app.get("/previews/{token}")
async def get_preview(token: str) -> Response:
    url = _locator_from_token(token)
    try:
        blob = _service().locators.resolve(url)
    except KeyError:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "preview not found"})
    return Response(content=blob.data, media_type=blob.media_type)


@app.delete("/previews/{token}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_preview(token: str) -> Response:
    url = _locator_from_token(token)
    if not _service().locators.revoke(url):
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "preview not found"})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def run() -> None:
    """Run a development ASGI server using uvicorn.

    Exposes the app at host:port (default 0.0.0.0:8080). Set PORT env var to override.
    """
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8080"))
    # Enable reload in dev unless explicitly disabled
    reload = os.getenv("RELOAD", "true").lower() in {"1", "true", "yes", "on"}

    uvicorn.run("pdf_preview.webapi:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    run()
