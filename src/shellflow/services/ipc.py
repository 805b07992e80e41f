"""Line protocol spoken by task scripts over the task FIFO.

Task scripts never write the protocol by hand. The executor prepends a small
prelude to every script which defines three shell functions::

    output "Downloading packages"   ->  output:: Downloading packages
    progress 0.25                   ->  progress:: 0.25
    error "disk full"               ->  error:: disk full

Each function writes a single line to the FIFO named by ``$WFOUT`` and does
nothing when there is none, so the same script still runs fine outside of the
orchestrator.
The executor terminates the stream with ``end::`` once the script has exited.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

PIPE_ENV_VAR = "WFOUT"
SENTINEL = "end::\n"

SHELL_PRELUDE = """
function output() {
    if [ -p "$WFOUT" ]; then echo "output:: $*" > "$WFOUT"; fi
}
function progress() {
    if [ -p "$WFOUT" ]; then echo "progress:: $*" > "$WFOUT"; fi
}
function error() {
    if [ -p "$WFOUT" ]; then echo "error:: $*" > "$WFOUT"; fi
}
"""


class EventKind(str, Enum):
    """Kind of structured event reported by a task script."""

    OUTPUT = "output"
    PROGRESS = "progress"
    ERROR = "error"


@dataclass(frozen=True)
class TaskEvent:
    """A single classified line from the task FIFO."""

    kind: EventKind
    message: str
    value: float | None = None


_PREFIXES = {f"{kind.value}:: ": kind for kind in EventKind}


def wrap_script(cmd: str) -> str:
    """Prepend the protocol functions to a task script."""
    return SHELL_PRELUDE + cmd


def parse_line(line: str) -> TaskEvent | None:
    """Classify a raw FIFO line by its exact prefix.

    Returns None for unrecognized lines and for progress values that are not
    finite decimal numbers.
    """
    for prefix, kind in _PREFIXES.items():
        if not line.startswith(prefix):
            continue

        message = line[len(prefix):].strip()
        if kind is not EventKind.PROGRESS:
            return TaskEvent(kind=kind, message=message)

        try:
            value = float(message)
        except ValueError:
            logger.error(f"Unable to parse progress: {message!r}")
            return None
        if not math.isfinite(value):
            logger.error(f"Unable to parse progress: {message!r}")
            return None
        return TaskEvent(kind=kind, message=message, value=value)

    return None
