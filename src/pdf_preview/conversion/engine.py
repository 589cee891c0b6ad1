import asyncio
import importlib
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from .errors import EngineUnavailable
from .interfaces import EngineHandle

logger = logging.getLogger(__name__)


class EngineState:
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"


@dataclass(frozen=True)
class AcquisitionStrategy:
    name: str
    acquire: Callable[[], Any]


def import_strategy(module_path: str) -> AcquisitionStrategy:
    return AcquisitionStrategy(module_path, lambda: importlib.import_module(module_path))


# Same engine, two entry points: the public package first, then the helper
# module it re-exports from.
DEFAULT_STRATEGIES: tuple[AcquisitionStrategy, ...] = (
    import_strategy("pypdfium2"),
    import_strategy("pypdfium2._helpers"),
)


class EngineLoader:
    """Lazily acquire the rendering engine at most once.

    The first `acquire()` starts a single loading attempt; every caller that
    arrives while it is in flight awaits the same future and observes the same
    outcome. A successful handle is memoized for the lifetime of the loader.
    A failed attempt returns the loader to `unloaded` so a later call may try
    again.
    """

    def __init__(
        self,
        strategies: Sequence[AcquisitionStrategy] | None = None,
        *,
        workers: int = 1,
    ) -> None:
        self._strategies = tuple(strategies if strategies is not None else DEFAULT_STRATEGIES)
        self._workers = workers
        self._state = EngineState.UNLOADED
        self._handle: EngineHandle | None = None
        self._pending: asyncio.Future[EngineHandle] | None = None

    @property
    def state(self) -> str:
        return self._state

    @property
    def handle(self) -> EngineHandle | None:
        return self._handle

    async def acquire(self) -> EngineHandle:
        if self._handle is not None:
            return self._handle
        if self._pending is None:
            self._state = EngineState.LOADING
            self._pending = asyncio.ensure_future(self._load())
            self._pending.add_done_callback(self._settle)
        # Shielded so a cancelled waiter does not cancel the shared attempt.
        return await asyncio.shield(self._pending)

    def _settle(self, fut: "asyncio.Future[EngineHandle]") -> None:
        self._pending = None
        if fut.cancelled() or fut.exception() is not None:
            self._state = EngineState.UNLOADED

    async def _load(self) -> EngineHandle:
        logger.info("phase=engine_load status=start strategies=%d", len(self._strategies))
        failures: list[tuple[str, BaseException]] = []
        for strategy in self._strategies:
            try:
                module = await asyncio.to_thread(strategy.acquire)
                if module is None or not hasattr(module, "PdfDocument"):
                    raise ImportError(f"{strategy.name} does not expose PdfDocument")
            except Exception as e:
                logger.warning("phase=engine_load status=retry strategy=%s error=%r", strategy.name, e)
                failures.append((strategy.name, e))
                continue

            executor = ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="pdfium-worker")
            handle = EngineHandle(module=module, strategy=strategy.name, executor=executor)
            self._handle = handle
            self._state = EngineState.READY
            logger.info("phase=engine_load status=success strategy=%s workers=%d", strategy.name, self._workers)
            return handle

        detail = "; ".join(f"{name}: {err}" for name, err in failures) or "no acquisition strategies configured"
        logger.error("phase=engine_load status=failure attempts=%d", len(failures))
        raise EngineUnavailable(f"Failed to load PDF engine ({detail})", failures)

    def close(self) -> None:
        """Shut the engine worker down and return to the unloaded state."""
        if self._handle is not None:
            self._handle.executor.shutdown(wait=False)
        self._handle = None
        self._state = EngineState.UNLOADED


_DEFAULT_LOADER: EngineLoader | None = None


def default_loader() -> EngineLoader:
    """Process-wide loader shared by every service built without an explicit one."""
    global _DEFAULT_LOADER
    if _DEFAULT_LOADER is None:
        _DEFAULT_LOADER = EngineLoader()
    return _DEFAULT_LOADER
