"""Path handling utilities for local and remote paths."""
import os
import posixpath
import shlex
from pathlib import PurePosixPath
from typing import List


def normalize_path(path: str) -> str:
    """
    Normalize path to use forward slashes for cross-platform comparison.

    Args:
        path: Path to normalize

    Returns:
        Path with forward slashes
    """
    return path.replace('\\', '/')


def join_remote_path(*parts: str) -> str:
    """
    Join path components for remote (Unix) systems using forward slashes.

    Empty components are skipped and duplicate slashes at the seams are
    collapsed, so join_remote_path('/home/u/site/', 'css/a.css') gives
    '/home/u/site/css/a.css'.
    """
    cleaned = [normalize_path(str(p)) for p in parts if p]
    if not cleaned:
        return ''
    head, tail = cleaned[0], cleaned[1:]
    if not tail:
        return head
    return '/'.join([head.rstrip('/')] + [p.strip('/') for p in tail if p.strip('/')])


def remote_file_path(remote_root: str, relative_path: str) -> str:
    """
    Resolve a transfer-set entry under the remote root.

    Raises:
        ValueError: If the relative path escapes the remote root
    """
    normalized = posixpath.normpath(normalize_path(relative_path))
    if normalized.startswith('/') or '..' in PurePosixPath(normalized).parts:
        raise ValueError(f"Invalid path: {relative_path} - path traversal not allowed")
    return join_remote_path(remote_root, normalized)


def parent_directories(relative_path: str) -> List[str]:
    """
    List the non-root parent directories of a relative POSIX path, outermost first.

    parent_directories('a/b/c.txt') == ['a', 'a/b']
    """
    parts = normalize_path(relative_path).split('/')[:-1]
    return ['/'.join(parts[:i]) for i in range(1, len(parts) + 1)]


def quote_remote_path(path: str) -> str:
    """
    Quote a remote path for use in a shell command.

    A leading '~/' is left unquoted so the remote shell still expands it.
    """
    if path == '~':
        return path
    if path.startswith('~/'):
        rest = path[2:]
        return '~/' + shlex.quote(rest) if rest else '~/'
    return shlex.quote(path)


def with_trailing_slash(path: str) -> str:
    """Append a single trailing separator (rsync copies contents, not the directory)."""
    return path if path.endswith(('/', os.sep)) else path + '/'
