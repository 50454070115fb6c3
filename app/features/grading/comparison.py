"""Tiered output comparison: ordered pure predicates, first definite verdict wins."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

DEFAULT_NUMERIC_TOLERANCE = 0.01
_QUOTES = ("'", '"')


class ComparisonMode:
    TRIM = "TRIM"
    QUOTE_NORMALISE = "QUOTE_NORMALISE"
    NUMERIC_TOLERANCE = "NUMERIC_TOLERANCE"


@dataclass
class CompareConfig:
    numeric_tolerance: float = DEFAULT_NUMERIC_TOLERANCE


@dataclass
class CompareAttempt:
    mode: str
    passed: Optional[bool]
    reason: Optional[str] = None


@dataclass
class CompareResult:
    passed: bool
    mode_applied: Optional[str]
    reason: Optional[str]
    attempts: List[CompareAttempt] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.passed


# (actual, expected, cfg) -> (verdict or None when the tier does not decide, reason)
StrategyHandler = Callable[[str, str, CompareConfig], Tuple[Optional[bool], Optional[str]]]


def strip_quotes(s: str) -> str:
    """Remove one layer of matching surrounding quotes."""
    if len(s) >= 2 and s[0] in _QUOTES and s[-1] == s[0]:
        return s[1:-1]
    return s


def parse_number(s: str) -> Optional[float]:
    try:
        value = float(s)
    except (TypeError, ValueError):
        return None
    if math.isnan(value):
        return None
    return value


class ComparatorStrategy:
    def __init__(self, mode: str, handler: StrategyHandler, *, priority: int = 100) -> None:
        self.mode = mode
        self._handler = handler
        self.priority = priority

    def evaluate(self, actual: str, expected: str, cfg: CompareConfig) -> CompareAttempt:
        outcome, reason = self._handler(actual, expected, cfg)
        return CompareAttempt(mode=self.mode, passed=outcome, reason=reason)


class ComparatorRegistry:
    def __init__(self) -> None:
        self._strategies: Dict[str, ComparatorStrategy] = {}

    def register(self, strategy: ComparatorStrategy) -> None:
        self._strategies[strategy.mode] = strategy

    def ordered(self) -> List[ComparatorStrategy]:
        return sorted(self._strategies.values(), key=lambda strat: strat.priority)

    def list_modes(self) -> List[str]:
        return [strat.mode for strat in self.ordered()]


registry = ComparatorRegistry()


def _handle_trim(act: str, exp: str, cfg: CompareConfig):
    if act.strip() == exp.strip():
        return True, None
    return None, None


def _handle_quotes(act: str, exp: str, cfg: CompareConfig):
    if strip_quotes(act.strip()) == strip_quotes(exp.strip()):
        return True, None
    return None, None


def _handle_numeric(act: str, exp: str, cfg: CompareConfig):
    na, ne = parse_number(act.strip()), parse_number(exp.strip())
    if na is None or ne is None:
        return None, None
    if math.isinf(na) or math.isinf(ne):
        ok = na == ne
    else:
        ok = abs(na - ne) < cfg.numeric_tolerance
    if ok:
        return True, None
    return False, f"Numeric mismatch beyond tolerance {cfg.numeric_tolerance:g}"


registry.register(ComparatorStrategy(ComparisonMode.TRIM, _handle_trim, priority=0))
registry.register(ComparatorStrategy(ComparisonMode.QUOTE_NORMALISE, _handle_quotes, priority=10))
registry.register(ComparatorStrategy(ComparisonMode.NUMERIC_TOLERANCE, _handle_numeric, priority=20))


def compare(actual: str, expected: str, cfg: Optional[CompareConfig] = None) -> CompareResult:
    cfg = cfg or CompareConfig()
    actual = actual or ""
    expected = expected or ""
    attempts: List[CompareAttempt] = []
    for strategy in registry.ordered():
        attempt = strategy.evaluate(actual, expected, cfg)
        attempts.append(attempt)
        if attempt.passed is not None:
            return CompareResult(attempt.passed, attempt.mode, attempt.reason, attempts=attempts)
    return CompareResult(False, None, "Output does not match expected", attempts=attempts)


__all__ = [
    "ComparisonMode",
    "CompareConfig",
    "CompareAttempt",
    "CompareResult",
    "compare",
    "parse_number",
    "strip_quotes",
]
