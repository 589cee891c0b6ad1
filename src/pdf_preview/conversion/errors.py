class ConversionError(Exception):
    """Base class for every failure raised inside the preview pipeline."""


class InvalidInputType(ConversionError):
    pass


class EngineUnavailable(ConversionError):
    """No acquisition strategy produced a usable rendering engine.

    `failures` keeps the (strategy name, exception) pair of every attempt in
    the order they were tried.
    """

    def __init__(self, message: str, failures: list[tuple[str, BaseException]] | None = None) -> None:
        super().__init__(message)
        self.failures = list(failures or [])


class DocumentDecodeError(ConversionError):
    pass


class PageAccessError(ConversionError):
    pass


class RenderExecutionError(ConversionError):
    pass


class EncodeError(ConversionError):
    pass


class PlaceholderGenerationError(ConversionError):
    pass
