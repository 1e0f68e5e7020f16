"""Path glob matching for ownership patterns.

Patterns are matched with wcmatch using git-style globs, with dotfiles matched
like any other name:

- ``*`` matches within one path segment, ``?`` one character of a segment
- ``**`` as a whole segment matches zero or more segments
- ``[abc]`` / ``[!abc]`` character classes, ``{a,b}`` alternatives

Patterns match the whole path; ``*.py`` does not match ``src/app.py``.
"""

from __future__ import annotations

from collections.abc import Sequence

from wcmatch import glob

GLOB_FLAGS = glob.GLOBSTAR | glob.DOTGLOB | glob.BRACE


def glob_match(path: str, pattern: str) -> bool:
    return glob.globmatch(path, pattern, flags=GLOB_FLAGS)


def match_any(path: str, patterns: Sequence[str]) -> bool:
    if not patterns:
        return False
    return glob.globmatch(path, list(patterns), flags=GLOB_FLAGS)
