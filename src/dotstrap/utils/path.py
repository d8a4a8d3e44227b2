import os
import pwd
from pathlib import Path
from typing import Optional, Union


def expand_tilde(path: Union[str, Path], home: Optional[Path] = None) -> str:
    """Expand ``~``, ``~/x`` and ``~user/x`` without going through a shell.

    A ``~user`` prefix for an unknown user is returned unchanged.
    """
    path = str(path)
    if home is None:
        home = Path.home()

    if path == '~':
        return str(home)
    if path.startswith('~/'):
        return str(home) + path[1:]
    if path.startswith('~'):
        prefix, sep, rest = path.partition('/')
        try:
            user_home = pwd.getpwnam(prefix[1:]).pw_dir
        except KeyError:
            return path
        return user_home + sep + rest
    return path


def resolve_dir(path: Union[str, Path], home: Optional[Path] = None, cwd: Optional[Path] = None) -> Path:
    """Turn a user supplied directory into an absolute path.

    Relative paths are anchored on their parent directory, which has to
    exist already; a bare name lands in the working directory.
    """
    expanded = expand_tilde(path, home)
    if os.path.isabs(expanded):
        return Path(expanded)

    if cwd is None:
        cwd = Path.cwd()

    parent = os.path.dirname(expanded) or '.'
    base = os.path.basename(expanded)
    parent_path = parent if os.path.isabs(parent) else os.path.join(str(cwd), parent)

    if os.path.isdir(parent_path):
        return Path(parent_path).resolve() / base
    if parent == '.':
        return Path(cwd) / base
    raise FileNotFoundError(f"Backup directory parent does not exist: {parent}")
