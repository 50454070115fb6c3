"""Execution session manager: lazily booted, leased, soft-reset interpreter sessions."""

from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Sequence

from app.adapters.python_runtime import PythonRuntime, RunOutcome
from app.core.config import Settings, get_settings
from app.features.grading.errors import EngineBootstrapError

logger = logging.getLogger(__name__)

RuntimeFactory = Callable[[], PythonRuntime]


class ExecutionSession:
    """One worker's runtime plus the extensions loaded into it.

    Runtime calls are blocking and run on a worker thread; ``_guard`` keeps
    them strictly one at a time even if a cancelled caller left a call
    in flight.
    """

    def __init__(self, runtime_factory: RuntimeFactory, *, worker_id: int, run_timeout_seconds: float) -> None:
        self.worker_id = worker_id
        self.run_timeout_seconds = run_timeout_seconds
        self._runtime_factory = runtime_factory
        self._runtime: Optional[PythonRuntime] = None
        self._guard = threading.Lock()
        self.extensions: List[str] = []
        self.restarts = 0

    @property
    def alive(self) -> bool:
        return self._runtime is not None and self._runtime.alive

    # -- blocking helpers (worker thread) ---------------------------------

    def _boot(self) -> None:
        with self._guard:
            if self._runtime is None:
                self._runtime = self._runtime_factory()
            if self._runtime.alive:
                return
            self._runtime.start()
            for name in list(self.extensions):
                error = self._runtime.load_extension(name)
                if error:
                    self.extensions.remove(name)
                    raise EngineBootstrapError(f"failed to reload extension {name}: {error}", extension=name)

    def _load(self, names: Sequence[str]) -> None:
        with self._guard:
            for name in names:
                if name in self.extensions:
                    continue
                error = self._runtime.load_extension(name)
                if error:
                    raise EngineBootstrapError(f"failed to load extension {name}: {error}", extension=name)
                self.extensions.append(name)
                logger.info("session.extension_loaded worker=%s extension=%s", self.worker_id, name)

    def _guarded(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        with self._guard:
            return fn(*args, **kwargs)

    # -- async surface ------------------------------------------------------

    async def ensure_started(self, required_extensions: Iterable[str] = ()) -> None:
        """Boot the runtime if needed and load any extensions not yet present."""
        was_alive = self.alive
        try:
            await asyncio.to_thread(self._boot)
        except EngineBootstrapError:
            self.abort()
            raise
        except Exception as exc:  # noqa: BLE001
            self.abort()
            raise EngineBootstrapError(f"execution session failed to start: {exc}") from exc
        if not was_alive:
            logger.info("session.ready worker=%s extensions=%s", self.worker_id, self.extensions)
        missing = [name for name in required_extensions if name not in self.extensions]
        if missing:
            await asyncio.to_thread(self._load, missing)

    async def run(self, code: str, *, inputs: Optional[Sequence[str]] = None,
                  timeout: Optional[float] = None) -> RunOutcome:
        """Execute ``code`` and capture stdout; faults are returned, never raised."""
        budget = self.run_timeout_seconds if timeout is None else timeout
        outcome = await asyncio.to_thread(self._guarded, self._runtime.run, code, timeout=budget, inputs=inputs)
        if not self.alive:
            # Timed out or crashed: the interpreter was torn down, bring it back for the next run.
            self.restarts += 1
            logger.warning("session.recover worker=%s restarts=%s", self.worker_id, self.restarts)
            await self.ensure_started()
        return outcome

    async def bind(self, name: str, value: Any) -> None:
        await asyncio.to_thread(self._guarded, self._runtime.bind, name, value)

    async def reset(self, preserve: Iterable[str] = ()) -> List[str]:
        """Clear every bound name except ``preserve``; runtime internals and extensions are reinstalled."""
        keep = set(preserve)
        try:
            removed = await asyncio.to_thread(self._guarded, self._runtime.reset, keep)
        except (EngineBootstrapError, TimeoutError) as exc:
            self.abort()
            raise EngineBootstrapError(f"session reset failed: {exc}") from exc
        logger.debug("session.reset worker=%s removed=%d", self.worker_id, len(removed))
        return removed

    async def names(self) -> List[str]:
        return await asyncio.to_thread(self._guarded, self._runtime.names)

    def abort(self) -> None:
        """Tear the interpreter down immediately, interrupting any in-flight run."""
        if self._runtime is not None:
            self._runtime.interrupt()

    def close(self) -> None:
        if self._runtime is not None:
            self._runtime.close()

    def describe(self) -> Dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "alive": self.alive,
            "extensions": list(self.extensions),
            "restarts": self.restarts,
        }


class SessionManager:
    """Bounded pool of execution sessions; each lease owns one session exclusively.

    With a pool size of one this is the single process-wide session.
    """

    def __init__(self, settings: Optional[Settings] = None, runtime_factory: Optional[RuntimeFactory] = None) -> None:
        self.settings = settings or get_settings()
        self.pool_size = max(1, int(self.settings.session_pool_size))
        self._runtime_factory = runtime_factory or self._default_factory
        self._sessions: List[ExecutionSession] = []
        self._idle: List[ExecutionSession] = []
        self._slots: Optional[asyncio.Semaphore] = None

    def _default_factory(self) -> PythonRuntime:
        return PythonRuntime(boot_timeout_seconds=self.settings.session_boot_timeout_seconds)

    def _semaphore(self) -> asyncio.Semaphore:
        if self._slots is None:
            self._slots = asyncio.Semaphore(self.pool_size)
        return self._slots

    def _checkout(self) -> ExecutionSession:
        if self._idle:
            return self._idle.pop()
        session = ExecutionSession(
            self._runtime_factory,
            worker_id=len(self._sessions),
            run_timeout_seconds=self.settings.run_timeout_seconds,
        )
        self._sessions.append(session)
        return session

    @asynccontextmanager
    async def lease(self, required_extensions: Iterable[str] = ()) -> AsyncIterator[ExecutionSession]:
        """Acquire a session for a whole grading pass; it is reset on every exit path."""
        async with self._semaphore():
            session = self._checkout()
            try:
                await session.ensure_started(list(required_extensions))
                yield session
            except asyncio.CancelledError:
                # Killing the interpreter unblocks a run still in flight on the worker thread.
                session.abort()
                raise
            finally:
                if session.alive:
                    try:
                        await session.reset()
                    except EngineBootstrapError:
                        logger.exception("session.reset_failed worker=%s", session.worker_id)
                self._idle.append(session)

    async def restart(self) -> List[Dict[str, Any]]:
        """Soft-reset every booted session, waiting for in-flight passes to finish."""
        slots = self._semaphore()
        for _ in range(self.pool_size):
            await slots.acquire()
        try:
            for session in self._sessions:
                if session.alive:
                    await session.reset()
            logger.info("session.restart sessions=%d", len(self._sessions))
            return [session.describe() for session in self._sessions]
        finally:
            for _ in range(self.pool_size):
                slots.release()

    def describe(self) -> List[Dict[str, Any]]:
        return [session.describe() for session in self._sessions]

    def close(self) -> None:
        for session in self._sessions:
            session.close()
        self._sessions.clear()
        self._idle.clear()


__all__ = ["ExecutionSession", "SessionManager"]
