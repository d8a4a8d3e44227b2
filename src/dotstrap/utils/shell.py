#!/usr/bin/env python3
"""
Subprocess helpers for dotstrap.

Every external tool (rsync, brew, apt-get, dpkg, gpg, fc-cache) is invoked
through :func:`run_command` so callers deal with one error type.
"""

import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .logger import get_logger
from .platform import platform_detector

logger = get_logger(__name__)


class CommandError(Exception):
    """Raised when an external command exits with a non-zero status."""

    def __init__(self, args: Sequence[str], returncode: int, output: str = ''):
        self.cmd = list(args)
        self.returncode = returncode
        self.output = output
        message = f"Command failed ({returncode}): {' '.join(self.cmd)}"
        if output:
            message += f": {output}"
        super().__init__(message)


def run_command(
    args: Sequence[str],
    cwd: Optional[Path] = None,
    check: bool = True,
    capture: bool = True,
    env: Optional[Dict[str, str]] = None,
    input: Optional[Union[str, bytes]] = None
) -> subprocess.CompletedProcess:
    """Run a command, raising CommandError on failure when ``check`` is set.

    With ``capture`` the command's stdout and stderr are merged into
    ``stdout``; without it the command talks to the terminal directly.
    Binary ``input`` switches the call to bytes mode.
    """
    args = [str(arg) for arg in args]
    text = not isinstance(input, bytes)
    logger.debug(f"Running: {' '.join(args)}")

    try:
        result = subprocess.run(
            args,
            cwd=cwd,
            env=env,
            input=input,
            text=text,
            stdout=subprocess.PIPE if capture else None,
            stderr=subprocess.STDOUT if capture else None,
        )
    except FileNotFoundError as e:
        raise CommandError(args, 127, str(e))

    if check and result.returncode != 0:
        output = result.stdout if capture else ''
        if isinstance(output, bytes):
            output = output.decode('utf-8', errors='replace')
        raise CommandError(args, result.returncode, (output or '').strip())

    return result


def sudo_prefix() -> List[str]:
    """``sudo`` unless the process already runs as root."""
    return [] if platform_detector.is_root else ['sudo']
