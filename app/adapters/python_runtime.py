"""Child-process Python interpreter exposing run / bind / reset / load primitives.

One ``PythonRuntime`` owns one long-lived interpreter process whose module-level
namespace persists between calls. Every call is a blocking request/response
over a pipe; callers are expected to serialise access (see the session
manager). A run that outlives its budget is cancelled by terminating the
child, after which the runtime reports itself as not alive and must be
restarted.
"""

from __future__ import annotations

import builtins
import contextlib
import importlib
import io
import logging
import multiprocessing
import sys
import time
import traceback
from dataclasses import dataclass
from types import ModuleType
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from app.features.grading.errors import EngineBootstrapError, RunTimeout, RuntimeExecutionFault

logger = logging.getLogger(__name__)

# Reinstalled by every reset, whatever user code bound to them.
RUNTIME_INTERNALS = frozenset({"__name__", "__builtins__", "input"})

_SOURCE_NAME = "<submission>"


@dataclass
class RunOutcome:
    stdout: str
    fault: Optional[RuntimeExecutionFault] = None
    duration_ms: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.fault is None


class _InputFeed:
    """Replacement for ``input()`` that replays queued lines and echoes them."""

    def __init__(self) -> None:
        self._lines: List[str] = []

    def load(self, lines: Optional[Sequence[str]]) -> None:
        self._lines = [str(line) for line in (lines or [])]

    def __call__(self, prompt: Any = "") -> str:
        value = self._lines.pop(0) if self._lines else ""
        print(f"{prompt}{value}")
        return value


def _fresh_namespace(feed: _InputFeed) -> dict:
    return {"__name__": "__main__", "__builtins__": builtins, "input": feed}


def _describe_exception(exc: BaseException) -> Tuple[str, str, str]:
    tb = exc.__traceback__
    # Drop the frame of the exec() call itself so the trace starts in user code.
    if tb is not None and tb.tb_next is not None:
        tb = tb.tb_next
    formatted = "".join(traceback.format_exception(type(exc), exc, tb))
    return type(exc).__name__, str(exc), formatted


def _execute(namespace: dict, feed: _InputFeed, code: str, inputs: Optional[Sequence[str]]):
    feed.load(inputs)
    buffer = io.StringIO()
    fault = None
    with contextlib.redirect_stdout(buffer):
        try:
            compiled = compile(code, _SOURCE_NAME, "exec")
            exec(compiled, namespace)
        except BaseException as exc:  # noqa: BLE001 - SystemExit from user code must not end the loop
            fault = _describe_exception(exc)
    return buffer.getvalue(), fault


def _reset(namespace: dict, feed: _InputFeed, extensions: Dict[str, ModuleType], keep: Iterable[str]) -> List[str]:
    """Rebuild the namespace from scratch.

    Only ``keep`` names survive with their current values. The bootstrap
    entries, the ``input`` feed and extension roots are put back from the
    runtime's own references, so rebinding them in user code does not stick.
    """
    reinstalled = set(RUNTIME_INTERNALS) | set(extensions)
    kept = {name: namespace[name] for name in keep if name in namespace and name not in reinstalled}
    removed = [name for name in namespace if name not in kept and name not in reinstalled]
    namespace.clear()
    namespace.update(_fresh_namespace(feed))
    namespace.update(extensions)
    namespace.update(kept)
    return removed


def _load_extension(namespace: dict, extensions: Dict[str, ModuleType], name: str) -> Optional[str]:
    try:
        module = importlib.import_module(name)
    except Exception as exc:  # noqa: BLE001
        return f"{type(exc).__name__}: {exc}"
    root = name.split(".")[0]
    extensions[root] = sys.modules.get(root, module)
    namespace[root] = extensions[root]
    return None


def _serve(conn) -> None:
    """Child process main loop."""
    feed = _InputFeed()
    extensions: Dict[str, ModuleType] = {}
    namespace = _fresh_namespace(feed)
    conn.send(("ready", None))
    while True:
        try:
            message = conn.recv()
        except (EOFError, OSError):
            break
        op, args = message[0], message[1:]
        try:
            if op == "run":
                conn.send(("ok", _execute(namespace, feed, args[0], args[1])))
            elif op == "bind":
                namespace[args[0]] = args[1]
                conn.send(("ok", None))
            elif op == "reset":
                conn.send(("ok", _reset(namespace, feed, extensions, args[0])))
            elif op == "load":
                conn.send(("ok", _load_extension(namespace, extensions, args[0])))
            elif op == "names":
                conn.send(("ok", sorted(k for k in namespace if not k.startswith("_"))))
            elif op == "close":
                conn.send(("ok", None))
                break
            else:
                conn.send(("error", f"unknown op {op!r}"))
        except Exception as exc:  # noqa: BLE001 - e.g. unpicklable results
            conn.send(("error", f"{type(exc).__name__}: {exc}"))
    conn.close()


class PythonRuntime:
    """Parent-side handle on one child interpreter."""

    def __init__(self, *, boot_timeout_seconds: float = 30.0, control_timeout_seconds: float = 120.0) -> None:
        self.boot_timeout_seconds = boot_timeout_seconds
        self.control_timeout_seconds = control_timeout_seconds
        self._ctx = multiprocessing.get_context("spawn")
        self._process = None
        self._conn = None

    @property
    def alive(self) -> bool:
        return self._process is not None and self._process.is_alive()

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    def start(self) -> None:
        if self.alive:
            return
        parent_conn, child_conn = self._ctx.Pipe()
        process = self._ctx.Process(target=_serve, args=(child_conn,), daemon=True, name="grader-runtime")
        try:
            process.start()
        except Exception as exc:  # noqa: BLE001
            raise EngineBootstrapError(f"failed to start runtime process: {exc}") from exc
        child_conn.close()
        if not parent_conn.poll(self.boot_timeout_seconds):
            process.kill()
            raise EngineBootstrapError("runtime process did not become ready in time")
        try:
            tag, _ = parent_conn.recv()
        except (EOFError, OSError) as exc:
            raise EngineBootstrapError("runtime process exited during startup") from exc
        if tag != "ready":
            raise EngineBootstrapError(f"unexpected runtime handshake: {tag!r}")
        self._process, self._conn = process, parent_conn
        logger.info("runtime.started pid=%s", process.pid)

    def _call(self, *message: Any, timeout: Optional[float] = None) -> Any:
        conn = self._conn
        if not self.alive or conn is None:
            raise EngineBootstrapError("runtime process is not running")
        try:
            conn.send(message)
        except (OSError, ValueError) as exc:
            self.interrupt()
            raise EngineBootstrapError(f"runtime pipe closed: {exc}") from exc
        budget = self.control_timeout_seconds if timeout is None else timeout
        try:
            ready = conn.poll(budget)
        except (OSError, ValueError) as exc:
            raise EngineBootstrapError("runtime was interrupted") from exc
        if not ready:
            self.interrupt()
            raise TimeoutError(budget)
        try:
            tag, payload = conn.recv()
        except (EOFError, OSError) as exc:
            self.interrupt()
            raise EngineBootstrapError("runtime process exited unexpectedly") from exc
        if tag == "error":
            raise EngineBootstrapError(f"runtime rejected {message[0]!r}: {payload}")
        return payload

    def run(self, code: str, *, timeout: float, inputs: Optional[Sequence[str]] = None) -> RunOutcome:
        start = time.perf_counter()
        try:
            stdout, fault = self._call("run", code, list(inputs or []), timeout=timeout)
        except TimeoutError:
            logger.warning("runtime.timeout budget=%.2fs", timeout)
            return RunOutcome("", RunTimeout(timeout), (time.perf_counter() - start) * 1000.0)
        except EngineBootstrapError as exc:
            # The child died mid-run (os._exit, segfault, OOM kill): a fault of the submission.
            return RunOutcome("", RuntimeExecutionFault(str(exc), exc_type="RuntimeCrash"),
                              (time.perf_counter() - start) * 1000.0)
        duration_ms = (time.perf_counter() - start) * 1000.0
        if fault is None:
            return RunOutcome(stdout, None, duration_ms)
        exc_type, message, formatted = fault
        return RunOutcome(stdout, RuntimeExecutionFault(message, exc_type=exc_type, traceback=formatted), duration_ms)

    def bind(self, name: str, value: Any) -> None:
        self._call("bind", name, value)

    def reset(self, except_names: Iterable[str] = ()) -> List[str]:
        return self._call("reset", sorted(set(except_names)))

    def load_extension(self, name: str) -> Optional[str]:
        try:
            return self._call("load", name)
        except TimeoutError:
            return f"loading {name!r} timed out"

    def names(self) -> List[str]:
        return self._call("names")

    def interrupt(self) -> None:
        """Cancel whatever the child is doing by terminating it."""
        process, conn = self._process, self._conn
        self._process, self._conn = None, None
        if process is not None and process.is_alive():
            process.terminate()
            process.join(1.0)
            if process.is_alive():
                process.kill()
                process.join(1.0)
        if conn is not None:
            with contextlib.suppress(OSError):
                conn.close()
        if process is not None:
            logger.info("runtime.stopped pid=%s", process.pid)

    def close(self) -> None:
        if self.alive:
            with contextlib.suppress(Exception):
                self._call("close", timeout=2.0)
        self.interrupt()


__all__ = ["PythonRuntime", "RunOutcome", "RUNTIME_INTERNALS"]
