"""Keychain file persistence.

A keychain on disk is two files:
  - ``<path>``         the serialized record (JSON)
  - ``<path>.sha256``  the checksum returned by ``Keychain.dump()``

Each is written atomically (temp file in the same directory, then
``os.replace``) with owner-only permissions. On load the checksum file, if
present, is passed to ``Keychain.load()`` as the trusted anchor.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from ..core import AuditLogger, EventSeverity, EventType, get_audit_logger
from .keychain import Keychain

logger = logging.getLogger(__name__)

CHECKSUM_SUFFIX = ".sha256"


class KeychainFile:
    """Reads and writes one keychain record and its checksum anchor.

    Each file is replaced atomically, but the pair is not: a crash between
    the two writes leaves a new record next to the old checksum, and the
    next ``load`` fails with ``ChecksumMismatch``. The previous record is
    not kept, so recovering means re-importing an export (or removing the
    stale ``.sha256`` file after checking the record by hand).

    Args:
        path: Record file path. Parent directories are created on save.
        audit_logger: AuditLogger instance. Uses the global one if None.
    """

    def __init__(self, path: Union[str, Path], audit_logger: Optional[AuditLogger] = None):
        self.path = Path(path)
        self.checksum_path = self.path.with_name(self.path.name + CHECKSUM_SUFFIX)
        self.logger = audit_logger or get_audit_logger()

    def exists(self) -> bool:
        """True if a non-empty record file is present."""
        return self.path.exists() and self.path.stat().st_size > 0

    def create(self, password: str) -> Keychain:
        """Initialize a new keychain and save it.

        Raises:
            FileExistsError: A keychain already exists at this path.
        """
        if self.exists():
            raise FileExistsError(f"Keychain already exists: {self.path}")
        keychain = Keychain.init(password, audit_logger=self.logger)
        self.save(keychain)
        return keychain

    def save(self, keychain: Keychain) -> str:
        """Write the keychain and its checksum. Returns the checksum."""
        serialized, checksum = keychain.dump()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write(self.path, serialized)
        atomic_write(self.checksum_path, checksum + "\n")

        self.logger.log_keychain_event(
            EventType.KEYCHAIN_SAVED,
            "Keychain saved",
            details={"path": str(self.path)}
        )
        return checksum

    def read_checksum(self) -> Optional[str]:
        """Stored checksum, or None if the checksum file is missing."""
        if not self.checksum_path.exists():
            return None
        return self.checksum_path.read_text(encoding="utf-8").strip()

    def load(self, password: str) -> Keychain:
        """Load the keychain from disk.

        Raises:
            FileNotFoundError: No keychain at this path.
            ChecksumMismatch: Record does not match the checksum file.
            AuthenticationError: Wrong master password.
        """
        if not self.exists():
            raise FileNotFoundError(f"Keychain does not exist: {self.path}")

        serialized = self.path.read_text(encoding="utf-8")
        checksum = self.read_checksum()
        if checksum is None:
            logger.warning("No checksum file for %s; loading without tamper check", self.path)
            self.logger.log_event(
                event_type=EventType.CHECKSUM_MISMATCH,
                severity=EventSeverity.INVESTIGATE,
                message="Keychain loaded without a checksum anchor",
                details={"path": str(self.path)}
            )

        return Keychain.load(password, serialized, checksum, audit_logger=self.logger)


def atomic_write(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` via a same-directory temp file, mode 0600."""
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        if os.name == "posix":
            os.chmod(tmp_name, 0o600)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
