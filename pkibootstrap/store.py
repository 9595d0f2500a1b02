"""
Writes a generated bundle to disk as ``<pki_path>/<name>.crt`` and
``<pki_path>/<name>.key``. Not part of certificate generation: the bundle is
built entirely in memory and only handed here by the caller.
"""
import errno
import os
import pathlib
import shutil
import tempfile
from typing import Dict, List, Mapping, Tuple
from urllib.parse import unquote, urlparse

from cryptography import x509

from .pem import load_cert_pem

CERT_MODE = 0o644
KEY_MODE = 0o600
DIR_MODE = 0o755


def resolve_pki_path(uri_or_path: "str | os.PathLike[str]") -> pathlib.Path:
    raw = str(uri_or_path)
    if raw.startswith("file://"):
        raw = unquote(urlparse(raw).path or "")
    return pathlib.Path(raw).expanduser().resolve(strict=False)


def path_for_cert(pki_path: "str | os.PathLike[str]", name: str) -> pathlib.Path:
    return resolve_pki_path(pki_path) / f"{name}.crt"


def path_for_key(pki_path: "str | os.PathLike[str]", name: str) -> pathlib.Path:
    return resolve_pki_path(pki_path) / f"{name}.key"


def _write(path: pathlib.Path, data: bytes, mode: int) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    os.chmod(path, mode)


def _entry_target(base: pathlib.Path, entry: str) -> Tuple[pathlib.Path, int]:
    if entry.endswith(".key"):
        return path_for_key(base, entry[: -len(".key")]), KEY_MODE
    if entry.endswith(".crt"):
        return path_for_cert(base, entry[: -len(".crt")]), CERT_MODE
    raise ValueError(f"unexpected bundle entry: {entry!r}")


def _commit(staging: pathlib.Path, targets: List[pathlib.Path]) -> None:
    # previous files are parked in staging so a failed swap can be undone
    parked = staging / ".previous"
    parked.mkdir()
    moved_aside: List[pathlib.Path] = []
    placed: List[pathlib.Path] = []
    try:
        for target in targets:
            if target.exists():
                os.replace(target, parked / target.name)
                moved_aside.append(target)
            os.replace(staging / target.name, target)
            placed.append(target)
    except Exception:
        for target in placed:
            target.unlink(missing_ok=True)
        for target in moved_aside:
            os.replace(parked / target.name, target)
        raise


def write_bundle(pki_path: "str | os.PathLike[str]", bundle: Mapping[str, bytes]) -> List[pathlib.Path]:
    """
    Write every bundle entry, all or nothing.

    Entries are written to a staging directory inside ``pki_path`` and only
    moved over the existing files once every write succeeded; on failure the
    previous files are restored. OSError propagates to the caller.
    """
    base = resolve_pki_path(pki_path)
    base.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)

    entries = [(entry, *_entry_target(base, entry)) for entry in sorted(bundle)]
    for _, target, _ in entries:
        if target.is_dir():
            raise IsADirectoryError(errno.EISDIR, "bundle target is a directory", str(target))

    staging = pathlib.Path(tempfile.mkdtemp(prefix=".bundle-", dir=base))
    try:
        for entry, target, mode in entries:
            _write(staging / target.name, bundle[entry], mode)
        _commit(staging, [target for _, target, _ in entries])
    finally:
        shutil.rmtree(staging, ignore_errors=True)
    return [target for _, target, _ in entries]


def read_bundle_certs(pki_path: "str | os.PathLike[str]") -> Dict[str, x509.Certificate]:
    base = resolve_pki_path(pki_path)
    return {p.stem: load_cert_pem(p.read_bytes()) for p in sorted(base.glob("*.crt"))}
