"""
Shared test fixtures and configuration for pytest.
"""

import io
import logging
import socket
import sqlite3
from pathlib import Path

import pytest

from snapship.utils.config import Settings
from snapship.utils.db import SqliteStore
from snapship.utils.ftp import FtpUploader, LoggingFTP
from snapship.utils.schemas import TransferConfig


# ============================================================================
# Environment isolation
# ============================================================================

@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Run every test in an empty directory with no snapship env vars set."""
    for name in Settings.model_fields:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("FTP_PASS", raising=False)
    monkeypatch.chdir(tmp_path)
    yield


# ============================================================================
# In-process FTP endpoint
# ============================================================================

class FakeFtpServer:
    """In-memory FTP server state shared by the FakeFTP connections it hands out.

    Attributes:
        files: Uploaded files keyed by remote path ("dir/sub/name")
        dirs: Existing directories relative to the login directory
        connect_failures: Exceptions raised by successive connect() calls
        connections: Number of connect() calls seen
    """

    def __init__(self, user: str = "user", password: str = "pass") -> None:
        self.user = user
        self.password = password
        self.files: dict[str, bytes] = {}
        self.dirs: set[str] = set()
        self.connect_failures: list[BaseException] = []
        self.connections = 0
        self.size_supported = True
        self.size_offset = 0
        self.configs: list[TransferConfig] = []
        self.closed = 0

    def factory(self, config: TransferConfig) -> "FakeFTP":
        self.configs.append(config)
        return FakeFTP(self)


class FakeFTP(LoggingFTP):
    """FTP connection whose replies are scripted instead of read from a socket.

    Replies go through ftplib's own response parsing, so status codes raise
    the same ftplib errors a real server would trigger.
    """

    def __init__(self, server: FakeFtpServer) -> None:
        super().__init__()
        self.server = server
        self.path: list[str] = []

    def _reply(self, text: str) -> str:
        self.file = io.StringIO(text)
        return self.getresp()

    def _join(self, name: str) -> str:
        return "/".join(self.path + [name])

    def connect(self, host="", port=0, timeout=-999, source_address=None):
        self.server.connections += 1
        if self.server.connect_failures:
            raise self.server.connect_failures.pop(0)
        self.host, self.port, self.timeout = host, port, timeout
        self.welcome = self._reply("220-Fake FTP server\r\n220 Ready for upload\r\n")
        return self.welcome

    def login(self, user="", passwd="", acct=""):
        if user != self.server.user or passwd != self.server.password:
            return self._reply("530 Login incorrect.\r\n")
        return self._reply("230 Login successful.\r\n")

    def cwd(self, dirname):
        target = self._join(dirname)
        if target not in self.server.dirs:
            return self._reply("550 No such directory.\r\n")
        self.path.append(dirname)
        return self._reply("250 Directory changed.\r\n")

    def mkd(self, dirname):
        self.server.dirs.add(self._join(dirname))
        return self._reply(f'257 "{dirname}" created.\r\n')

    def storbinary(self, cmd, fp, blocksize=8192, callback=None, rest=None):
        name = cmd.split(" ", 1)[1]
        data = b""
        while buf := fp.read(blocksize):
            data += buf
            if callback:
                callback(buf)
        self.server.files[self._join(name)] = data
        return self._reply("226 Transfer complete.\r\n")

    def size(self, filename):
        if not self.server.size_supported:
            return self._reply("502 SIZE not implemented.\r\n")
        return len(self.server.files[self._join(filename)]) + self.server.size_offset

    def close(self):
        self.server.closed += 1
        super().close()


@pytest.fixture
def ftp_server() -> FakeFtpServer:
    return FakeFtpServer()


@pytest.fixture
def sleeps() -> list:
    """Backoff delays recorded instead of slept."""
    return []


@pytest.fixture
def make_uploader(ftp_server, sleeps):
    """Build an FtpUploader wired to the fake server."""

    def _make(factory=None, **overrides) -> FtpUploader:
        params = dict(host="127.0.0.1", port=21, user="user", password="pass", use_tls=False)
        params.update(overrides)
        return FtpUploader(
            TransferConfig(**params),
            logger=logging.getLogger("tests.ftp"),
            ftp_factory=factory or ftp_server.factory,
            sleep=sleeps.append,
        )

    return _make


@pytest.fixture
def payload(tmp_path) -> Path:
    path = tmp_path / "payload.bin"
    path.write_bytes(b"snapshot-bytes" * 2000)
    return path


@pytest.fixture
def closed_port() -> int:
    """A local TCP port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


# ============================================================================
# SQLite store
# ============================================================================

@pytest.fixture
def store(tmp_path) -> SqliteStore:
    s = SqliteStore(tmp_path / "people.sqlite", seed=1234, busy_sleep=0.01)
    s.ensure_schema()
    return s


@pytest.fixture
def count_rows():
    """Row count of a database file opened independently of the store."""

    def _count(path: Path, table: str = "people") -> int:
        conn = sqlite3.connect(path)
        try:
            return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        finally:
            conn.close()

    return _count
