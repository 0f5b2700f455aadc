"""
Exceptions raised by bookmerge.
"""


class BookmergeError(Exception):
    """Base class for all bookmerge errors."""
    pass


class MalformedUrlError(BookmergeError, ValueError):
    """URL could not be parsed into scheme, host and path.

    Never escapes normalize_url(); a scan degrades to a string fallback.
    """
    pass


class InvalidMergeError(BookmergeError):
    """A merge was requested on a group that cannot be merged."""
    pass


class InvalidOptionError(BookmergeError, ValueError):
    """Unknown merge policy value or an out-of-range detection setting."""
    pass


class GroupNotFoundError(BookmergeError, KeyError):
    """No duplicate group with the given id in the current result."""

    def __str__(self):
        return f"Duplicate group not found: {self.args[0]}" if self.args else "Duplicate group not found"


class BookmarkNotFoundError(BookmergeError, LookupError):
    """The storage collaborator has no bookmark with the given id."""

    def __str__(self):
        return f"Bookmark not found: {self.args[0]}" if self.args else "Bookmark not found"
