"""Executor running a single task script with its IPC channel."""

import logging
import os
import shutil
import signal
import subprocess
import tempfile
import threading
from collections.abc import Callable
from typing import BinaryIO

from shellflow.models.status import Task
from shellflow.services.ipc import (
    PIPE_ENV_VAR,
    SENTINEL,
    TaskEvent,
    parse_line,
    wrap_script,
)

logger = logging.getLogger(__name__)

SHELL = "/bin/bash"
FIFO_NAME = ".task"


class TaskError(Exception):
    """Raised when a task cannot be started or exits unsuccessfully."""

    def __init__(self, task_id: str, message: str, returncode: int | None = None):
        self.task_id = task_id
        self.returncode = returncode
        super().__init__(message)


class _Pipe:
    """Read end handed to the caller, write end handed to the process."""

    def __init__(self) -> None:
        read_fd, self.write_fd = os.pipe()
        self.reader: BinaryIO = os.fdopen(read_fd, "rb")

    def close_writer(self) -> None:
        if self.write_fd is not None:
            os.close(self.write_fd)
            self.write_fd = None


class TaskExecutor:
    """Runs one task script and dispatches the events it reports.

    The script is started through ``/bin/bash -c`` in a new session, so it
    leads its own process group and ``abort`` reaches every descendant.
    Events written with the ``output``/``progress``/``error`` shell functions
    are read from a private FIFO on a background thread and passed to
    ``on_event`` in the order they were written.
    """

    def __init__(
        self,
        task: Task,
        on_event: Callable[[TaskEvent], None] | None = None,
    ):
        if task is None:
            raise ValueError("task is required")

        self._task = task
        self._on_event = on_event
        self._process: subprocess.Popen | None = None
        self._stdout: _Pipe | None = None
        self._stderr: _Pipe | None = None
        self._fifo_fd: int | None = None
        self._fifo_ready = threading.Event()
        self._cancel: threading.Event | None = None
        self._process_lock = threading.Lock()

    @property
    def task(self) -> Task:
        return self._task

    def stdout_pipe(self) -> BinaryIO:
        """Send the script's stdout to a pipe instead of ours and return its read end."""
        if self._stdout is not None:
            raise RuntimeError("stdout pipe already requested")
        self._stdout = _Pipe()
        return self._stdout.reader

    def stderr_pipe(self) -> BinaryIO:
        """Send the script's stderr to a pipe instead of ours and return its read end."""
        if self._stderr is not None:
            raise RuntimeError("stderr pipe already requested")
        self._stderr = _Pipe()
        return self._stderr.reader

    def run(
        self,
        cancel: threading.Event | None,
        cwd: str,
        variables: dict[str, str] | None = None,
    ) -> None:
        """Run the task to completion.

        Raises TaskError if the task could not be started or exited non-zero.
        All events written by the script are dispatched before this returns.
        """
        if cancel is not None and cancel.is_set():
            raise TaskError(self._task.id, "task cancelled before start")

        self._cancel = cancel
        self._fifo_ready.clear()
        workdir = tempfile.mkdtemp(prefix="shellflow.")
        try:
            fifo_path = os.path.join(workdir, FIFO_NAME)
            try:
                os.mkfifo(fifo_path, 0o666)
            except OSError as e:
                raise TaskError(self._task.id, f"unable to create fifo: {e}")

            reader = threading.Thread(
                target=self._read_fifo,
                args=(fifo_path,),
                name=f"fifo-{self._task.id}",
                daemon=True,
            )
            reader.start()

            # The process must not start before the FIFO is open on our side
            self._fifo_ready.wait()
            if self._fifo_fd is None:
                reader.join()
                raise TaskError(self._task.id, f"unable to open fifo: {fifo_path}")

            try:
                returncode = self._run_process(cwd, fifo_path, variables)
            finally:
                self._drain(reader)
        finally:
            self._close_pipes()
            shutil.rmtree(workdir, ignore_errors=True)

        if returncode < 0:
            raise TaskError(
                self._task.id,
                f"signal: {signal.Signals(-returncode).name}",
                returncode,
            )
        if returncode > 0:
            raise TaskError(self._task.id, f"exit status {returncode}", returncode)

    def abort(self) -> None:
        """Send SIGTERM to the process group of the running script."""
        with self._process_lock:
            process = self._process
        if process is None:
            return

        logger.warning(f"Aborting task {self._task.id}")
        try:
            os.killpg(os.getpgid(process.pid), signal.SIGTERM)
        except ProcessLookupError:
            logger.debug(f"Task {self._task.id} already exited")

    def _run_process(
        self,
        cwd: str,
        fifo_path: str,
        variables: dict[str, str] | None,
    ) -> int:
        env = os.environ.copy()
        env.update(variables or {})
        env[PIPE_ENV_VAR] = fifo_path

        try:
            process = subprocess.Popen(
                [SHELL, "-c", wrap_script(self._task.cmd)],
                cwd=cwd or None,
                env=env,
                stdout=self._stdout.write_fd if self._stdout else None,
                stderr=self._stderr.write_fd if self._stderr else None,
                start_new_session=True,
            )
        except OSError as e:
            logger.error(f"Error while starting task {self._task.id}: {e}")
            raise TaskError(self._task.id, str(e))

        with self._process_lock:
            self._process = process
            # An abort that arrived while the process was starting found nothing to kill
            cancelled = self._cancel is not None and self._cancel.is_set()
        if cancelled:
            self.abort()

        returncode = process.wait()
        with self._process_lock:
            self._process = None
        return returncode

    def _read_fifo(self, fifo_path: str) -> None:
        # Read-write open does not block waiting for a writer
        try:
            self._fifo_fd = os.open(fifo_path, os.O_RDWR)
        except OSError as e:
            logger.error(f"Unable to open fifo {fifo_path}: {e}")
            return
        finally:
            self._fifo_ready.set()

        try:
            with os.fdopen(self._fifo_fd, "rb", closefd=False) as stream:
                for raw in stream:
                    line = raw.decode("utf-8", errors="replace")
                    if line == SENTINEL:
                        break
                    if not line.strip():
                        continue

                    logger.debug(f"Task {self._task.id}: {line.rstrip()}")
                    event = parse_line(line)
                    if event is None or self._on_event is None:
                        continue
                    try:
                        self._on_event(event)
                    except Exception as e:
                        logger.error(f"Error while handling event from task {self._task.id}: {e}")
        except OSError as e:
            logger.error(f"Error while reading fifo {fifo_path}: {e}")

    def _drain(self, reader: threading.Thread) -> None:
        """Terminate the FIFO stream and wait until every line has been handled."""
        try:
            # Leading newline ends any partial line left behind by the script
            os.write(self._fifo_fd, b"\n" + SENTINEL.encode())
        except OSError as e:
            logger.error(f"Unable to write end of stream for task {self._task.id}: {e}")
        else:
            reader.join()
        finally:
            os.close(self._fifo_fd)
            self._fifo_fd = None

    def _close_pipes(self) -> None:
        for pipe in (self._stdout, self._stderr):
            if pipe is not None:
                pipe.close_writer()
