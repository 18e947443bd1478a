"""
QueueError: an exception that remembers where it was wrapped.
"""

import sys
from typing import List


def _caller_name(depth: int = 2) -> str:
    try:
        return sys._getframe(depth).f_code.co_name
    except ValueError:
        return "<unknown>"


class QueueError(Exception):
    """
    Wraps a lower level exception with a context message.

    Each wrap appends ``"<function> - <context>"`` to ``trace``, naming the
    function that raised it. Wrapping a QueueError again extends its trace
    and keeps the innermost exception as ``original``.
    """

    def __init__(self, trace: str, original: BaseException):
        step = f"{_caller_name()} - {trace}"

        if isinstance(original, QueueError):
            self.original: BaseException = original.original
            self.trace: List[str] = [*original.trace, step]
        else:
            self.original = original
            self.trace = [step]

        super().__init__(str(self.original))

    def __str__(self) -> str:
        return f"{self.original} | Trace: {', '.join(self.trace)}"
