"""Event building — turns a failure and its surroundings into a ConditionEvent."""

from __future__ import annotations

import traceback
from collections import deque
from typing import Iterable, Mapping, Optional

from ui_sentinel.core.models import ConditionEvent, ConditionKind

_EXCEPTION_KINDS = {
    "NoSuchElementException": ConditionKind.ELEMENT_NOT_FOUND,
    "ElementNotFound": ConditionKind.ELEMENT_NOT_FOUND,
    "TimeoutException": ConditionKind.TIMEOUT,
    "TimeoutError": ConditionKind.TIMEOUT,
    "StaleElementReferenceException": ConditionKind.STALE_REFERENCE,
    "AssertionError": ConditionKind.ASSERTION_FAILURE,
    "ConnectionError": ConditionKind.NETWORK_ERROR,
}


class StepHistory:
    """Bounded record of the most recent test steps, oldest first.

    Owned by the caller (typically one per scenario) and handed to
    :func:`build_event`.
    """

    def __init__(self, maxlen: int = 20):
        self._steps: deque[str] = deque(maxlen=maxlen)

    @property
    def maxlen(self) -> int:
        return self._steps.maxlen or 0

    def record(self, step: str) -> None:
        self._steps.append(step)

    def snapshot(self) -> tuple[str, ...]:
        return tuple(self._steps)

    def clear(self) -> None:
        self._steps.clear()

    def __len__(self) -> int:
        return len(self._steps)


def classify_exception(exc: Optional[BaseException]) -> ConditionKind:
    """Map an exception to a condition kind by class name (then its bases)."""
    if exc is None:
        return ConditionKind.EXCEPTION
    for cls in type(exc).__mro__:
        kind = _EXCEPTION_KINDS.get(cls.__name__)
        if kind is not None:
            return kind
    return ConditionKind.EXCEPTION


def format_stack_trace(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def build_event(
    kind: Optional[ConditionKind] = None,
    message: str = "",
    *,
    exception: Optional[BaseException] = None,
    history: Optional[StepHistory] = None,
    current_url: Optional[str] = None,
    expected_url: Optional[str] = None,
    page_title: Optional[str] = None,
    dom_snapshot: Optional[str] = None,
    screenshot: Optional[str] = None,
    console_logs: Iterable[str] = (),
    locator_strategy: Optional[str] = None,
    locator_value: Optional[str] = None,
    metadata: Optional[Mapping[str, str]] = None,
    dom_max_chars: Optional[int] = None,
) -> ConditionEvent:
    """Assemble an immutable event.

    ``kind`` defaults to the exception's classification, and ``message``
    to the exception text.
    """
    if kind is None:
        kind = classify_exception(exception)
    if not message and exception is not None:
        message = str(exception) or type(exception).__name__
    stack_trace = format_stack_trace(exception) if exception is not None else None
    if dom_snapshot and dom_max_chars is not None and len(dom_snapshot) > dom_max_chars:
        dom_snapshot = dom_snapshot[:dom_max_chars]

    return ConditionEvent(
        kind=kind,
        message=message,
        stack_trace=stack_trace,
        current_url=current_url,
        expected_url=expected_url,
        page_title=page_title,
        dom_snapshot=dom_snapshot,
        screenshot=screenshot,
        console_logs=tuple(console_logs),
        prior_steps=history.snapshot() if history is not None else (),
        locator_strategy=locator_strategy,
        locator_value=locator_value,
        metadata=dict(metadata or {}),
    )
