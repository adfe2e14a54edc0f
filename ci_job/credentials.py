"""
Script: ci_job/credentials.py
What: Gets SSH access to the private test corpus.
Doing: Downloads the encrypted deploy key, decrypts it with the CI-provided key/IV, and clones over SSH.
Why: Only the encrypted key is public; the key/IV pair lives in the CI provider's secret settings.
Goal: Clone the private tests with the decrypted key on disk only for the clone itself.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import httpx
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ci_job.common import CiJobError, ConfigError, run_cmd
from ci_job.context import SecretPair
from ci_job.settings import Settings


AES_KEY_BYTES = 32
AES_BLOCK_BITS = 128


def fetch_encrypted_key(url: str, *, timeout: float) -> bytes:
    try:
        response = httpx.get(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise CiJobError(f"Failed to download encrypted key from {url}: {exc}") from exc
    return response.content


def decrypt_key(blob: bytes, key_hex: str, iv_hex: str) -> bytes:
    """
    Decrypt an AES-256-CBC blob with PKCS7 padding.

    Same contract as `openssl aes-256-cbc -K <key_hex> -iv <iv_hex> -d`:
    key and IV are raw hex, not a passphrase.
    """
    try:
        key = bytes.fromhex(key_hex)
        iv = bytes.fromhex(iv_hex)
    except ValueError as exc:
        raise ConfigError("Encrypted key/IV variables are not valid hex") from exc
    if len(key) != AES_KEY_BYTES or len(iv) != AES_BLOCK_BITS // 8:
        raise ConfigError("Encrypted key/IV variables have the wrong length for AES-256-CBC")

    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    unpadder = padding.PKCS7(AES_BLOCK_BITS).unpadder()
    try:
        padded = decryptor.update(blob) + decryptor.finalize()
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as exc:
        raise CiJobError("Failed to decrypt private key (bad decrypt)") from exc


@contextmanager
def ssh_identity(key_bytes: bytes, path: Path) -> Iterator[Path]:
    """
    Install `key_bytes` as an SSH identity for the duration of the block.

    The file is created with mode 0600 and removed on every exit path,
    including exceptions raised inside the block.
    """
    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as handle:
            handle.write(key_bytes)
        # O_CREAT mode is ignored when the file already existed.
        os.chmod(path, 0o600)
        yield path
    finally:
        path.unlink(missing_ok=True)


def trust_host(host: str, known_hosts: Path) -> None:
    """Append the host's RSA key to `known_hosts` so the clone is non-interactive."""
    host_keys = run_cmd(["ssh-keyscan", "-H", "-p", "22", "-t", "rsa", host])
    known_hosts.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    with known_hosts.open("a", encoding="utf-8") as handle:
        handle.write(host_keys)


def clone_private_tests(secret: SecretPair, settings: Settings) -> None:
    blob = fetch_encrypted_key(settings.encrypted_key_url, timeout=settings.http_timeout)
    key_bytes = decrypt_key(blob, secret.key, secret.iv)
    trust_host(settings.ssh_host, settings.known_hosts)

    with ssh_identity(key_bytes, settings.ssh_identity):
        run_cmd(
            ["git", "clone", settings.private_repo_url],
            cwd=str(settings.external_test_dir),
            capture_output=False,
        )
    print("Removed decrypted private key")
