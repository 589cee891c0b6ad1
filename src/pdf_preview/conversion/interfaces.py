import asyncio
import functools
import os
from concurrent.futures import Executor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol, TypeVar

from PIL import Image

PDF_MEDIA_TYPE = "application/pdf"

T = TypeVar("T")


@dataclass(frozen=True)
class SourceDocument:
    name: str
    data: bytes = field(repr=False)
    media_type: str

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def stem(self) -> str:
        """Display name with its last extension stripped ("report.pdf" -> "report")."""
        root, _ = os.path.splitext(self.name)
        return root or self.name


@dataclass(frozen=True)
class EngineHandle:
    """Loaded rendering engine plus the worker it decodes and renders on.

    PDFium is not thread-safe, so all calls into `module` must go through
    `run`, which serializes them on the configured executor.
    """

    module: Any
    strategy: str
    executor: Executor = field(repr=False)

    async def run(self, fn: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, functools.partial(fn, *args))


@dataclass
class RasterSurface:
    image: Image.Image
    width: int
    height: int
    scale: float = 1.0


@dataclass(frozen=True)
class OutputArtifact:
    name: str
    data: bytes = field(repr=False)
    media_type: str
    width: int
    height: int
    url: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ConversionResult:
    image_url: str
    file: OutputArtifact | None
    error: str | None = None

    def __post_init__(self) -> None:
        succeeded = bool(self.image_url) and self.file is not None and self.error is None
        failed = not self.image_url and self.file is None and bool(self.error)
        if not (succeeded or failed):
            raise ValueError("ConversionResult must be either a full success or a failure with an error")

    @classmethod
    def success(cls, artifact: OutputArtifact) -> "ConversionResult":
        return cls(image_url=artifact.url, file=artifact)

    @classmethod
    def failure(cls, message: str) -> "ConversionResult":
        return cls(image_url="", file=None, error=message)

    @property
    def ok(self) -> bool:
        return self.file is not None

    def to_dict(self) -> dict[str, object]:
        body: dict[str, object] = {"image_url": self.image_url, "file": None}
        if self.file is not None:
            body["file"] = {
                "name": self.file.name,
                "media_type": self.file.media_type,
                "size_bytes": self.file.size,
                "width": self.file.width,
                "height": self.file.height,
            }
        if self.error is not None:
            body["error"] = self.error
        return body


class PlaceholderStyle(Enum):
    GENERIC_FAILURE = "_fallback"
    INFORMATIVE_PREVIEW = "_preview"

    @property
    def suffix(self) -> str:
        return self.value


@dataclass(frozen=True)
class EngineCheck:
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class Blob:
    data: bytes = field(repr=False)
    media_type: str


class PageRendererGateway(Protocol):
    async def render(self, engine: EngineHandle, document: SourceDocument) -> RasterSurface:
        """Rasterize the first page of `document` using the loaded engine."""


class EncoderGateway(Protocol):
    async def encode(self, surface: RasterSurface, stem: str, suffix: str = "") -> OutputArtifact:
        ...


class LocatorGateway(Protocol):
    def register(self, data: bytes, media_type: str) -> str:
        ...

    def resolve(self, url: str) -> Blob:
        ...

    def revoke(self, url: str) -> bool:
        ...
