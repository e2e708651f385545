"""Stack trace extraction for reported errors."""

import os
import sys
import traceback
from fnmatch import fnmatch
from types import FrameType
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import StackFrame

_PACKAGE = __name__.split(".")[0]


def is_project_module(module: str, project_packages: Sequence[str]) -> bool:
    """Check if a module name matches one of the project package patterns."""
    return any(fnmatch(module, pattern) for pattern in project_packages)


def _to_frame(
    frame: FrameType,
    lineno: int,
    project_packages: Sequence[str],
    source_root: Optional[str],
) -> StackFrame:
    code = frame.f_code
    module = frame.f_globals.get("__name__", "")
    filename = code.co_filename

    if source_root:
        root = os.path.join(os.path.abspath(source_root), "")
        if filename.startswith(root):
            filename = filename[len(root):]

    return StackFrame(
        method=getattr(code, "co_qualname", code.co_name),
        file=filename,
        line_number=lineno,
        in_project=is_project_module(module, project_packages),
    )


def _is_internal(frame: FrameType) -> bool:
    module = frame.f_globals.get("__name__", "")
    return module == _PACKAGE or module.startswith(_PACKAGE + ".")


def extract_stacktrace(
    error: Optional[BaseException],
    project_packages: Sequence[str] = (),
    source_root: Optional[str] = None,
) -> List[StackFrame]:
    """
    Build stack frames for an error, innermost frame first.

    Errors that were raised carry their own traceback, which points at the
    real failure site. Errors that were never raised get the current stack
    instead. Frames belonging to this package are left out either way.

    Args:
        error: Reported error, or None
        project_packages: fnmatch patterns of modules that belong to the app
        source_root: Path prefix stripped from file names

    Returns:
        List of StackFrame objects
    """
    entries: Iterable[Tuple[FrameType, int]]

    if error is not None and error.__traceback__ is not None:
        entries = reversed(list(traceback.walk_tb(error.__traceback__)))
    else:
        entries = traceback.walk_stack(sys._getframe())

    return [
        _to_frame(frame, lineno, project_packages, source_root)
        for frame, lineno in entries
        if not _is_internal(frame)
    ]
