"""Exclusion rules deciding which local paths are skipped during deployment."""
import logging
import re
from functools import lru_cache
from typing import Iterable, Optional, Pattern

logger = logging.getLogger(__name__)


class GlobPatternError(ValueError):
    """Raised when a glob pattern cannot be translated."""
    pass


def translate_glob(pattern: str) -> str:
    """
    Translate a shell glob into a regular expression.

    '*' and '?' stay within one path segment, '**' crosses segments and
    '**/' also matches zero directories. Wildcards match dot files.

    Raises:
        GlobPatternError: If a character class is not terminated
    """
    i, n = 0, len(pattern)
    res = []
    while i < n:
        c = pattern[i]
        if c == '*':
            j = i
            while j < n and pattern[j] == '*':
                j += 1
            if j - i == 1:
                res.append('[^/]*')
                i = j
            elif j < n and pattern[j] == '/':
                res.append('(?:.*/)?')
                i = j + 1
            else:
                res.append('.*')
                i = j
        elif c == '?':
            res.append('[^/]')
            i += 1
        elif c == '[':
            j = i + 1
            if j < n and pattern[j] in '!^':
                j += 1
            if j < n and pattern[j] == ']':
                j += 1
            while j < n and pattern[j] != ']':
                j += 1
            if j >= n:
                raise GlobPatternError(f"Unterminated character class in pattern: {pattern}")
            body = pattern[i + 1:j].replace('\\', '\\\\').replace('[', '\\[')
            if body[:1] in ('!', '^'):
                body = '^' + body[1:]
            res.append(f'[{body}]')
            i = j + 1
        elif c == '\\' and i + 1 < n:
            res.append(re.escape(pattern[i + 1]))
            i += 2
        else:
            res.append(re.escape(c))
            i += 1
    return '(?s:' + ''.join(res) + r')\Z'


@lru_cache(maxsize=256)
def _compile(pattern: str) -> Optional[Pattern]:
    """Compiled regex for a glob, or None when the glob is malformed."""
    try:
        return re.compile(translate_glob(pattern))
    except (GlobPatternError, re.error) as e:
        logger.warning(f"Invalid exclude pattern '{pattern}' ({e}), using substring match instead")
        return None


def glob_match(relative_path: str, pattern: str) -> bool:
    """
    Match a relative path against a glob.

    Patterns without a slash are also tried against the last path
    segment, so '*.log' excludes 'logs/app.log'.

    Raises:
        GlobPatternError: If the pattern is malformed
    """
    regex = _compile(pattern)
    if regex is None:
        raise GlobPatternError(f"Malformed glob: {pattern}")
    if regex.match(relative_path):
        return True
    if '/' not in pattern:
        basename = relative_path.rsplit('/', 1)[-1]
        return bool(regex.match(basename))
    return False


def should_exclude(relative_path: str, file_name: str, patterns: Iterable[str]) -> bool:
    """
    Check whether a path is excluded by any pattern.

    Each pattern is tried in turn: exact file name, path prefix, then
    glob. A malformed glob degrades to a substring test for that pattern
    only.

    Args:
        relative_path: Path relative to the deployment root, forward slashes
        file_name: Last component of the path
        patterns: Exclude patterns from the configuration

    Returns:
        True if the path should not be transferred
    """
    for pattern in patterns:
        if not pattern:
            continue
        if file_name == pattern:
            return True
        if relative_path.startswith(pattern):
            return True
        try:
            if glob_match(relative_path, pattern):
                return True
        except GlobPatternError:
            if pattern in relative_path:
                return True
    return False
