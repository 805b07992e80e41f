"""Shell commands evaluated by the workflow outside of tasks."""

import logging
import os
import subprocess

logger = logging.getLogger(__name__)


class VariableResolutionError(Exception):
    """Raised when a workflow variable command fails."""

    def __init__(self, name: str, detail: str):
        self.name = name
        self.detail = detail
        super().__init__(f"failed to initialize variable {name}: {detail}")


def resolve_variables(definitions: dict[str, str], cwd: str) -> dict[str, str]:
    """Run each variable command with ``sh -c`` and capture its trimmed stdout."""
    if definitions is None:
        raise ValueError("definitions is required")

    result: dict[str, str] = {}
    for name, command in definitions.items():
        if not isinstance(command, str):
            raise VariableResolutionError(name, "command must be a string")

        try:
            completed = subprocess.run(
                ["sh", "-c", command],
                cwd=cwd or None,
                stdout=subprocess.PIPE,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            logger.error(f"Error while initializing variable {name}: {e}")
            raise VariableResolutionError(name, f"exit status {e.returncode}")
        except OSError as e:
            logger.error(f"Error while initializing variable {name}: {e}")
            raise VariableResolutionError(name, str(e))

        result[name] = completed.stdout.strip()

    return result


def should_skip(skip_cmd: str, variables: dict[str, str] | None, cwd: str) -> bool:
    """Evaluate a group skip predicate. Exit code 0 means skip.

    Any other outcome, including failure to run the command, means do not skip.
    """
    if not skip_cmd:
        return False

    env = os.environ.copy()
    env.update(variables or {})

    try:
        completed = subprocess.run(["bash", "-c", skip_cmd], cwd=cwd or None, env=env)
    except OSError as e:
        logger.warning(f"Unable to evaluate skip command {skip_cmd!r}: {e}")
        return False

    return completed.returncode == 0
