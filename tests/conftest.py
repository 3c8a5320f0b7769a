"""Shared fixtures: deployment configs, local trees and an in-memory remote host."""
import posixpath
import shlex

import pytest

from dreamhost_deployer.core.exceptions import RemoteCommandError, TransferError
from dreamhost_deployer.core.models import CommandResult, DeploymentConfig


class FakeRemote:
    """
    Minimal remote filesystem understanding the fixed commands the
    deployer sends: ls -la, cp -r, rm -rf, mv, mkdir -p and test -d.
    """

    def __init__(self):
        self.dirs = {'/'}
        self.files = {}
        self.commands = []
        self.failing_commands = set()

    # -- helpers ---------------------------------------------------------
    def add_file(self, path, content=b''):
        for parent in self._parents(path):
            self.dirs.add(parent)
        self.files[path] = content

    def exists(self, path):
        return path in self.dirs or path in self.files

    def tree(self, root):
        """Snapshot of a subtree as {relative path: content}."""
        root = root.rstrip('/')
        snapshot = {}
        for path, content in self.files.items():
            if path.startswith(root + '/'):
                snapshot[path[len(root) + 1:]] = content
        for path in self.dirs:
            if path.startswith(root + '/'):
                snapshot.setdefault(path[len(root) + 1:] + '/', None)
        return snapshot

    @staticmethod
    def _parents(path):
        parents = []
        parent = posixpath.dirname(path)
        while parent and parent != '/':
            parents.append(parent)
            parent = posixpath.dirname(parent)
        return parents

    def _subtree(self, root):
        dirs = {d for d in self.dirs if d == root or d.startswith(root + '/')}
        files = {f: c for f, c in self.files.items() if f.startswith(root + '/')}
        return dirs, files

    def _remove(self, root):
        dirs, files = self._subtree(root)
        self.dirs -= dirs
        for path in files:
            del self.files[path]
        self.files.pop(root, None)

    def _copy(self, source, target):
        dirs, files = self._subtree(source)
        for d in dirs:
            self.dirs.add(target + d[len(source):])
        for f, content in files.items():
            self.files[target + f[len(source):]] = content

    # -- command execution -----------------------------------------------
    def run(self, command):
        self.commands.append(command)
        args = shlex.split(command)
        name = args[0]
        if name in self.failing_commands:
            return 1, f"{name}: Permission denied"

        if args[:2] == ['ls', '-la']:
            path = args[2]
            if not self.exists(path):
                return 2, f"ls: cannot access '{path}': No such file or directory"
            return 0, f"total 0\ndrwxr-xr-x 2 user pg 4096 .\n"
        if args[:2] == ['cp', '-r']:
            source, target = args[2], args[3]
            if source not in self.dirs:
                return 1, f"cp: cannot stat '{source}': No such file or directory"
            self._copy(source, target)
            return 0, ''
        if args[:2] == ['rm', '-rf']:
            for path in args[2:]:
                self._remove(path)
            return 0, ''
        if name == 'mv':
            source, target = args[1], args[2]
            if not self.exists(source):
                return 1, f"mv: cannot stat '{source}': No such file or directory"
            self._copy(source, target)
            self._remove(source)
            return 0, ''
        if args[:2] == ['mkdir', '-p']:
            for path in args[2:]:
                path = path.rstrip('/') or '/'
                self.dirs.add(path)
                self.dirs.update(self._parents(path))
            return 0, ''
        if args[:2] == ['test', '-d']:
            return (0 if args[2] in self.dirs else 1), ''
        return 127, f"{name}: command not found"


class FakeSession:
    """Stands in for RemoteSession against a FakeRemote."""

    def __init__(self, remote, failing_uploads=(), alive=True):
        self.remote = remote
        self.failing_uploads = set(failing_uploads)
        self.alive = alive
        self.uploads = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.closed = True

    def is_alive(self):
        return self.alive

    def exec(self, command, timeout=None, check=True):
        exit_code, output = self.remote.run(command)
        if check and exit_code != 0:
            raise RemoteCommandError(command, exit_code, output)
        return CommandResult(command=command, exit_code=exit_code, output=output)

    def make_dirs(self, paths):
        quoted = ' '.join(shlex.quote(p) for p in paths)
        return self.exec(f"mkdir -p {quoted}")

    def upload(self, local_file, remote_file, timeout=None):
        if remote_file in self.failing_uploads:
            raise TransferError(f"Failed to upload {local_file} to {remote_file}: Permission denied")
        if posixpath.dirname(remote_file) not in self.remote.dirs:
            raise TransferError(f"No such directory for {remote_file}")
        with open(local_file, 'rb') as f:
            self.remote.add_file(remote_file, f.read())
        self.uploads.append(remote_file)


class FakeSessionFactory:
    """Session factory recording every session it hands out."""

    def __init__(self, remote, **session_kwargs):
        self.remote = remote
        self.session_kwargs = session_kwargs
        self.sessions = []
        self.error = None

    def __call__(self, config):
        if self.error is not None:
            raise self.error
        session = FakeSession(self.remote, **self.session_kwargs)
        self.sessions.append(session)
        return session


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def session_factory(remote):
    return FakeSessionFactory(remote)


@pytest.fixture
def site_dir(tmp_path):
    """A small built website."""
    root = tmp_path / 'site'
    (root / 'css').mkdir(parents=True)
    (root / 'js').mkdir()
    (root / 'node_modules' / 'pkg').mkdir(parents=True)
    (root / 'index.html').write_text('<h1>home</h1>')
    (root / 'about.html').write_text('<h1>about</h1>')
    (root / 'css' / 'site.css').write_text('body {}')
    (root / 'js' / 'app.js').write_text('console.log(1)')
    (root / 'js' / 'app.js.map').write_text('{}')
    (root / 'node_modules' / 'pkg' / 'index.js').write_text('module.exports = 1')
    (root / '.env').write_text('SECRET=1')
    return root


@pytest.fixture
def config(site_dir):
    return DeploymentConfig(
        host='example.com',
        username='deployer',
        remote_path='/home/deployer/example.com',
        local_path=str(site_dir),
        password='secret',
    )
