"""
Tar packager — uncompressed tarballs, optionally sealed with AES-256-GCM.

Plain archives are ordinary ``.tar`` files. With a password the tar
bytes are wrapped in an envelope:

    COMPCACHE_v1 | salt(16) | iv(12) | tag(16) | ciphertext

Key derivation: PBKDF2-SHA256, 480_000 iterations.
Encryption: AES-256-GCM. A wrong password or a tampered artifact fails
to unpack.
"""

from __future__ import annotations

import io
import logging
import os
import tarfile
import time
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from compcache.adapters.archive.base import ArchivePackager, ensure_exists
from compcache.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────

MAGIC = b"COMPCACHE_v1"
MAGIC_LEN = len(MAGIC)

KDF_ITERATIONS = 480_000

SALT_LEN = 16
IV_LEN = 12
TAG_LEN = 16
HEADER_LEN = MAGIC_LEN + SALT_LEN + IV_LEN + TAG_LEN


# ── Envelope ─────────────────────────────────────────────────────────

def _derive_key(password: str, salt: bytes, iterations: int = KDF_ITERATIONS) -> bytes:
    """Derive a 256-bit key from password using PBKDF2-SHA256."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def seal(plaintext: bytes, password: str, iterations: int = KDF_ITERATIONS) -> bytes:
    """Encrypt *plaintext* into the envelope format."""
    salt = os.urandom(SALT_LEN)
    iv = os.urandom(IV_LEN)
    key = _derive_key(password, salt, iterations)

    # AESGCM appends the tag to the ciphertext
    ct_with_tag = AESGCM(key).encrypt(iv, plaintext, None)
    ciphertext = ct_with_tag[:-TAG_LEN]
    tag = ct_with_tag[-TAG_LEN:]

    return b"".join((MAGIC, salt, iv, tag, ciphertext))


def is_sealed(data: bytes) -> bool:
    """Whether *data* starts with the envelope magic."""
    return data[:MAGIC_LEN] == MAGIC


def unseal(data: bytes, password: str, iterations: int = KDF_ITERATIONS) -> bytes:
    """Decrypt an envelope produced by :func:`seal`.

    Raises:
        ValueError: Not an envelope, truncated, or wrong password.
    """
    if not is_sealed(data):
        raise ValueError("Not a sealed archive (bad magic)")
    if len(data) < HEADER_LEN:
        raise ValueError("Sealed archive is truncated")

    offset = MAGIC_LEN
    salt = data[offset:offset + SALT_LEN]
    offset += SALT_LEN
    iv = data[offset:offset + IV_LEN]
    offset += IV_LEN
    tag = data[offset:offset + TAG_LEN]
    offset += TAG_LEN
    ciphertext = data[offset:]

    key = _derive_key(password, salt, iterations)
    try:
        return AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        raise ValueError("Wrong password or corrupted archive") from e


# ── Packager ─────────────────────────────────────────────────────────

class TarVaultPackager(ArchivePackager):
    """Pack with :mod:`tarfile`, sealing the result when a password is given.

    Args:
        iterations: KDF iteration count (lower it only in tests).
    """

    extension = "tar"

    def __init__(self, iterations: int = KDF_ITERATIONS):
        self.iterations = iterations

    @property
    def name(self) -> str:
        return "tar"

    def pack(
        self,
        directory: Path,
        archive_path: Path,
        password: str | None = None,
        *,
        root: Path | None = None,
    ) -> Receipt:
        directory = ensure_exists(directory, "Directory to archive")
        base = self._entry_root(directory, root)
        archive_path = Path(archive_path)
        arcname = directory.resolve().relative_to(base.resolve()).as_posix()

        start = time.monotonic()
        try:
            if password:
                # AES-GCM seals the whole tar at once
                buffer = io.BytesIO()
                with tarfile.open(fileobj=buffer, mode="w") as tar:
                    tar.add(directory, arcname=arcname, recursive=True)
                archive_path.write_bytes(seal(buffer.getvalue(), password, self.iterations))
            else:
                with tarfile.open(archive_path, "w") as tar:
                    tar.add(directory, arcname=arcname, recursive=True)
            size = archive_path.stat().st_size
        except (OSError, tarfile.TarError) as e:
            return Receipt.failure("pack", f"Cannot pack {directory}: {e}")

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Packed %s → %s (%d bytes%s)",
            arcname, archive_path.name, size, ", sealed" if password else "",
        )
        return Receipt.success(
            "pack",
            path=archive_path,
            duration_ms=elapsed_ms,
            metadata={"size_bytes": size, "sealed": bool(password)},
        )

    def unpack(self, archive_path: Path, target_dir: Path, password: str | None = None) -> Receipt:
        archive_path = ensure_exists(archive_path, "Archive to extract")
        target_dir = ensure_exists(target_dir, "Extraction target")

        start = time.monotonic()
        try:
            with archive_path.open("rb") as fh:
                sealed = is_sealed(fh.read(MAGIC_LEN))
            if sealed:
                if not password:
                    return Receipt.failure("unpack", "Archive is sealed but no password was given")
                data = unseal(archive_path.read_bytes(), password, self.iterations)
                with tarfile.open(fileobj=io.BytesIO(data), mode="r") as tar:
                    tar.extractall(target_dir, filter="data")
            else:
                with tarfile.open(archive_path, "r") as tar:
                    tar.extractall(target_dir, filter="data")
        except ValueError as e:
            return Receipt.failure("unpack", str(e))
        except (OSError, tarfile.TarError) as e:
            return Receipt.failure("unpack", f"Cannot unpack {archive_path}: {e}")

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info("Unpacked %s into %s", archive_path.name, target_dir)
        return Receipt.success("unpack", path=Path(target_dir), duration_ms=elapsed_ms)
