"""
Progress bar and spinner decorators for long-running scans and merges.
"""
from functools import wraps
import sys
import os
from typing import Any, Callable, Optional
from rich.progress import track, Progress, SpinnerColumn, TextColumn


def progress_disabled() -> bool:
    """
    Whether progress output should be suppressed.

    Progress is skipped when stdout is not a TTY (piped or redirected) or
    when BOOKMERGE_NO_PROGRESS is set.
    """
    return not sys.stdout.isatty() or bool(os.environ.get('BOOKMERGE_NO_PROGRESS'))


def with_progress(description: Optional[str] = None) -> Callable:
    """
    Show a progress bar while the decorated function iterates its first
    sized positional argument.

    The tracked iterable can only be consumed once, so only decorate
    functions that walk their input a single time.

    Args:
        description: Optional description to show (defaults to function name)

    Example:
        @with_progress("Merging groups")
        def merge_groups(groups):
            for group in groups:
                ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            if progress_disabled() or kwargs.get('no_progress', False):
                kwargs.pop('no_progress', None)
                return func(*args, **kwargs)

            for i, arg in enumerate(args):
                if (hasattr(arg, '__iter__') and
                        not isinstance(arg, (str, bytes, dict)) and
                        hasattr(arg, '__len__')):
                    desc = description or func.__name__.replace('_', ' ').title()
                    new_args = list(args)
                    new_args[i] = track(arg, description=desc, transient=True)
                    return func(*new_args, **kwargs)

            return func(*args, **kwargs)

        wrapper.without_progress = func
        return wrapper
    return decorator


def spinner(description: Optional[str] = None) -> Callable:
    """
    Show a spinner for operations without clear progress.

    Args:
        description: Optional description to show

    Example:
        @spinner("Scanning for duplicates")
        def scan(records):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            if progress_disabled():
                return func(*args, **kwargs)

            desc = description or func.__name__.replace('_', ' ').title()

            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                transient=True
            ) as progress:
                progress.add_task(desc, total=None)
                return func(*args, **kwargs)

        wrapper.without_progress = func
        return wrapper
    return decorator
