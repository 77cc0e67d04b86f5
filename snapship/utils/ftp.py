"""
FTP Client Utilities

Provides an FTP/FTPS uploader with password authentication and automatic retries.
Supports single-file uploads with remote directory creation, progress reporting
and line-by-line logging of server responses.

Usage:
    from snapship.utils.ftp import FtpUploader
    from snapship.utils.schemas import TransferConfig

    uploader = FtpUploader(TransferConfig(host="ftp.example.com", user="backup", password="..."))
    uploader.upload_file("data/app_backup.sqlite", "backups/daily")
"""

import ftplib
import logging
import ssl
import time
from pathlib import Path
from typing import Any, BinaryIO, Callable, Optional, Union

from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from snapship.utils.exceptions import AttemptFailed, ConnectionInitFailed, LocalFileMissing, UploadFailed
from snapship.utils.schemas import TransferAttempt, TransferConfig

BACKOFF_BASE_SECONDS = 0.5
BACKOFF_MAX_EXPONENT = 6
BLOCK_SIZE = 8192

RETRYABLE_ERRORS = ftplib.all_errors + (AttemptFailed,)


class _ResponseLoggingMixin:
    """Route the control-channel conversation into a logger."""

    response_logger: Optional[logging.Logger] = None
    verbose: bool = False

    def getmultiline(self) -> str:
        resp = super().getmultiline()  # type: ignore[misc]
        if self.response_logger is not None:
            for line in resp.splitlines():
                if line.strip():
                    self.response_logger.info("FTP server: %s", line)
        return resp

    def putcmd(self, line: str) -> None:
        if self.verbose and self.response_logger is not None:
            shown = "PASS ****" if line[:5].upper() == "PASS " else line
            self.response_logger.debug("FTP client: %s", shown)
        super().putcmd(line)  # type: ignore[misc]


class LoggingFTP(_ResponseLoggingMixin, ftplib.FTP):
    """Plain FTP connection that logs server responses."""


class LoggingFTPTLS(_ResponseLoggingMixin, ftplib.FTP_TLS):
    """Explicit FTPS connection that logs server responses."""


FtpFactory = Callable[[TransferConfig], ftplib.FTP]


def default_ftp_factory(config: TransferConfig) -> ftplib.FTP:
    """
    Build an unconnected FTP object for one attempt.

    Uses explicit TLS unless `use_tls` is off. With `ssl_verify` off the
    certificate chain and host name are not checked.

    Raises:
        ssl.SSLError: If the SSL context cannot be created
    """
    if not config.use_tls:
        return LoggingFTP()

    context = ssl.create_default_context()
    if not config.ssl_verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    return LoggingFTPTLS(context=context)


def _describe(error: BaseException) -> str:
    text = str(error).strip()
    return text or type(error).__name__


class FtpUploader:
    """Uploads one local file per call to a directory on an FTP server.

    Every attempt opens a fresh connection; failed attempts are retried with
    exponential backoff (0.5s, 1s, 2s, ... capped at 32s).
    """

    def __init__(
        self,
        config: TransferConfig,
        logger: Optional[logging.Logger] = None,
        ftp_factory: Optional[FtpFactory] = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        """Initialize uploader.

        Args:
            config: Immutable transfer parameters
            logger: Logger for uploader messages and server responses
            ftp_factory: Callable returning an unconnected ftplib.FTP per attempt
            sleep: Function used for backoff delays
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.ftp_factory = ftp_factory or default_ftp_factory
        self._sleep = sleep
        self.last_error = ""
        self.attempts: list[TransferAttempt] = []

        self.logger.info("FtpUploader initialized for host: %s", config.host)

    def build_url(self, remote_dir: str, filename: str) -> str:
        """
        Build the FTP URL of a file in a remote directory.

        Backslashes become forward slashes and leading/trailing slashes are
        stripped. The port is omitted only when it is <= 0.
        """
        cleaned = _normalize_dir(remote_dir)

        url = f"ftp://{self.config.host}"
        if self.config.port > 0:
            url += f":{self.config.port}"
        if cleaned:
            url += f"/{cleaned}"
        return f"{url}/{filename}"

    def upload_file(self, local_path: Union[str, Path], remote_dir: str) -> None:
        """
        Upload a file to the remote directory, retrying failed attempts.

        Args:
            local_path: Path to local file to upload
            remote_dir: Remote directory (created if missing)

        Raises:
            LocalFileMissing: If the local file does not exist (no attempt is made)
            ConnectionInitFailed: If a connection object cannot be built
            UploadFailed: If every attempt failed; carries the last attempt's error
        """
        local_file = Path(local_path)
        self.logger.info("Preparing to upload file: %s to %s", local_file, remote_dir)

        if not local_file.is_file():
            self.logger.error("Local file does not exist: %s", local_file)
            raise LocalFileMissing(local_file)

        url = self.build_url(remote_dir, local_file.name)
        self.last_error = ""
        self.attempts = []

        retrying = Retrying(
            stop=stop_after_attempt(self.config.max_retries),
            wait=wait_exponential(
                multiplier=BACKOFF_BASE_SECONDS,
                max=BACKOFF_BASE_SECONDS * 2 ** BACKOFF_MAX_EXPONENT,
            ),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=self._log_backoff,
            sleep=self._sleep,
        )

        try:
            for attempt in retrying:
                with attempt:
                    self._run_attempt(attempt.retry_state.attempt_number, local_file, remote_dir, url)
        except RetryError as e:
            self.logger.error(
                "FTP upload failed after %d attempts: %s", self.config.max_retries, self.last_error
            )
            raise UploadFailed(self.last_error, attempts=len(self.attempts)) from e.last_attempt.exception()

        self.logger.info("FTP upload succeeded: %s", local_file.name)

    def _log_backoff(self, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        self.logger.info("Retrying after backoff of %.1fs...", delay)

    def _run_attempt(self, number: int, local_file: Path, remote_dir: str, url: str) -> None:
        self.logger.info("FTP upload attempt %d to URL: %s", number, url)
        record = TransferAttempt(number=number)
        self.attempts.append(record)

        try:
            handle = open(local_file, "rb")
        except OSError as e:
            self.logger.error("Failed to open local file: %s", local_file)
            raise LocalFileMissing(local_file, f"Failed to open local file: {local_file}: {e}") from e

        with handle:
            try:
                self._transfer(handle, local_file, remote_dir)
            except RETRYABLE_ERRORS as e:
                record.error = self.last_error = _describe(e)
                self.logger.warning("FTP upload attempt %d failed: %s", number, self.last_error)
                raise

        record.succeeded = True

    def _new_connection(self) -> ftplib.FTP:
        try:
            ftp = self.ftp_factory(self.config)
        except Exception as e:
            self.logger.error("Failed to initialize FTP connection: %s", e)
            raise ConnectionInitFailed(f"Failed to initialize FTP connection: {e}") from e

        if isinstance(ftp, _ResponseLoggingMixin):
            ftp.response_logger = self.logger
            ftp.verbose = self.config.verbose
        return ftp

    def _transfer(self, handle: BinaryIO, local_file: Path, remote_dir: str) -> None:
        """One connect-transfer-close cycle."""
        ftp = self._new_connection()
        total = local_file.stat().st_size

        try:
            ftp.connect(self.config.host, self.config.port, timeout=self.config.timeout)
            ftp.login(self.config.user, self.config.password.get_secret_value())
            if isinstance(ftp, ftplib.FTP_TLS):
                ftp.prot_p()

            _ensure_remote_dir(ftp, _normalize_dir(remote_dir), self.logger)

            ftp.storbinary(
                f"STOR {local_file.name}",
                handle,
                blocksize=BLOCK_SIZE,
                callback=self._progress_callback(total),
            )

            _verify_remote_size(ftp, local_file.name, total, self.logger)

        finally:
            _close_connection(ftp)

    def _progress_callback(self, total: int) -> Optional[Callable[[bytes], None]]:
        sink = self.config.progress_sink
        if sink is None:
            return None

        sent = 0

        def on_block(block: bytes) -> None:
            nonlocal sent
            sent += len(block)
            try:
                sink(0, 0, total, sent)
            except Exception as e:
                raise AttemptFailed(f"Transfer aborted by progress callback: {e}") from e

        return on_block


def _close_connection(ftp: ftplib.FTP) -> None:
    # quit() needs a live control socket; a failed connect leaves none
    if getattr(ftp, "sock", None) is None:
        ftp.close()
        return
    try:
        ftp.quit()
    except ftplib.all_errors:
        ftp.close()


def _normalize_dir(remote_dir: str) -> str:
    return remote_dir.replace("\\", "/").strip("/")


def _ensure_remote_dir(ftp: ftplib.FTP, remote_dir: str, logger: logging.Logger) -> None:
    """
    Change into the remote directory, creating missing segments.

    Paths are relative to the login directory.

    Raises:
        ftplib.error_perm: If a segment can neither be entered nor created
    """
    if not remote_dir:
        return

    for segment in remote_dir.split("/"):
        if not segment:
            continue
        try:
            ftp.cwd(segment)
            continue
        except ftplib.error_perm:
            pass  # Directory doesn't exist, need to create

        try:
            ftp.mkd(segment)
            logger.debug("Created remote directory: %s", segment)
        except ftplib.error_perm:
            # Created concurrently by someone else; cwd below settles it
            pass
        ftp.cwd(segment)


def _verify_remote_size(ftp: ftplib.FTP, name: str, expected: int, logger: logging.Logger) -> None:
    """Compare the uploaded size with the local size when SIZE is supported."""
    try:
        remote_size = ftp.size(name)
    except ftplib.error_perm as e:
        logger.debug("SIZE not supported, skipping upload verification: %s", e)
        return

    if remote_size is not None and remote_size != expected:
        raise AttemptFailed(
            f"Upload verification failed: size mismatch (local={expected}, remote={remote_size})"
        )
