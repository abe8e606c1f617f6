"""Firmware release handling: version checks, unpacking and installing release files."""

from __future__ import annotations

import hashlib
import json
import shutil
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import IO, List, Mapping, Optional, Union

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from wattmon.utilities import json_summary, parse_semantic_version, strcmp_ci

RELEASE_MAGIC = b"IotaWatt"
FILE_MAGIC = b"FILE"
FIRMWARE_NAME = "iotawatt.bin"
SIGNATURE_SIZE = 64
_RELEASE_HEADER = struct.Struct("<8s8s")
_FILE_HEADER = struct.Struct("<4sI24s")
_CHUNK = 512
_ALIGN = 8


class UpdateError(Exception):
    """Raised when a release or a versions document cannot be used."""


@dataclass(frozen=True)
class UpdateDecision:
    """What a versions document says should happen next."""

    class_known: bool
    firmware_version: Optional[str] = None
    fetch_tables: bool = False
    latest_table_version: int = -1
    tables_newer: bool = False

    @property
    def up_to_date(self) -> bool:
        """True when no firmware download is called for."""
        return self.firmware_version is None


def evaluate_versions(
    document: Union[str, bytes, Mapping],
    update_class: str,
    current_version: str,
    table_version: int,
) -> UpdateDecision:
    """Decide from a versions document whether to fetch firmware or tables.

    A firmware update is reported as soon as the configured class names a
    release different from ``current_version``; the tables are then not
    considered. Otherwise tables are fetched whenever the document lists them.
    """
    if isinstance(document, (str, bytes, bytearray)):
        try:
            document = json.loads(document)
        except ValueError:
            raise UpdateError("could not parse versions.json file") from None
    if not isinstance(document, Mapping):
        raise UpdateError("could not parse versions.json file")

    classes = document.get("classes")
    if not isinstance(classes, Mapping):
        raise UpdateError("versions.json is invalid")

    class_known = update_class in classes
    if class_known:
        release = classes[update_class]
        release = None if release is None else str(release)
        if release != current_version:
            return UpdateDecision(class_known=True, firmware_version=release)

    if "tables" not in document:
        return UpdateDecision(class_known=class_known)

    tables = document["tables"]
    latest = parse_semantic_version(tables if isinstance(tables, str) else None)
    return UpdateDecision(
        class_known=class_known,
        fetch_tables=True,
        latest_table_version=latest,
        tables_newer=latest > table_version,
    )


def _read_exact(stream: IO[bytes], size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise UpdateError("release file format error")
    return data


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


def unpack_update(
    release_path: Union[str, Path],
    version: str,
    dest_dir: Union[str, Path],
    public_key: bytes,
) -> Path:
    """Unpack a signed release blob into ``dest_dir/version``.

    The firmware binary gets its MD5 (32 hex characters) appended. The
    SHA-256 of everything before the signature must verify against
    ``public_key``. Returns the directory holding the unpacked files.
    """
    release_path = Path(release_path)
    if not release_path.is_file():
        raise UpdateError(f"{release_path} not found")

    sha = hashlib.sha256()
    binary_found = False
    target = Path(dest_dir) / version

    with release_path.open("rb") as release:
        remaining = release_path.stat().st_size - SIGNATURE_SIZE

        header = release.read(_RELEASE_HEADER.size)
        if len(header) != _RELEASE_HEADER.size:
            raise UpdateError("release file header invalid")
        sha.update(header)
        remaining -= _RELEASE_HEADER.size
        magic, release_id = _RELEASE_HEADER.unpack(header)
        expected_id = version.encode("latin-1")[:8].ljust(8, b"\0")
        if magic != RELEASE_MAGIC or release_id != expected_id:
            raise UpdateError(
                f"release file header invalid: {magic!r} {release_id!r}"
            )

        _remove(target)
        target.mkdir(parents=True)

        while remaining > 0:
            raw = _read_exact(release, _FILE_HEADER.size)
            sha.update(raw)
            remaining -= _FILE_HEADER.size
            tag, size, raw_name = _FILE_HEADER.unpack(raw)
            if tag != FILE_MAGIC:
                raise UpdateError("release file format error")
            name = raw_name.split(b"\0", 1)[0].decode("latin-1")
            is_firmware = name.lower() == FIRMWARE_NAME
            binary_found = binary_found or is_firmware
            md5 = hashlib.md5()

            with (target / name).open("wb") as out:
                left = size
                while left:
                    take = min(left, _CHUNK)
                    padded = take + (-take) % _ALIGN
                    chunk = _read_exact(release, padded)
                    sha.update(chunk)
                    remaining -= padded
                    out.write(chunk[:take])
                    if is_firmware:
                        md5.update(chunk[:take])
                    left -= take
                if is_firmware:
                    out.write(md5.hexdigest().encode("ascii"))

            if remaining < 0:
                raise UpdateError("release file format error")

        signature = release.read()

    if len(signature) != SIGNATURE_SIZE:
        raise UpdateError("update rejected, no signature")
    try:
        VerifyKey(bytes(public_key)).verify(sha.digest(), signature)
    except (BadSignatureError, ValueError, TypeError):
        raise UpdateError("signature does not verify") from None
    if not binary_found:
        raise UpdateError("release contains no firmware binary")
    return target


def copy_update(version_dir: Union[str, Path], root: Union[str, Path]) -> List[str]:
    """Move staged release files from ``version_dir`` into ``root``.

    An existing ``config.txt`` is never replaced. The staging directory is
    deleted afterwards. Returns the names of the installed files.
    """
    version_dir = Path(version_dir)
    root = Path(root)
    if not version_dir.exists():
        raise UpdateError(f"{version_dir} not found")
    if not version_dir.is_dir():
        version_dir.unlink()
        raise UpdateError(f"{version_dir} is not a directory")

    installed = []
    for entry in sorted(version_dir.iterdir()):
        if not entry.is_file():
            continue
        destination = root / entry.name
        if strcmp_ci(entry.name, "config.txt") == 0 and destination.exists():
            continue
        _remove(destination)
        shutil.copyfile(entry, destination)
        installed.append(entry.name)

    shutil.rmtree(version_dir)
    return installed


def get_tables_version(path: Union[str, Path]) -> int:
    """Packed version of a tables file, or -1 if it is missing or has none."""
    path = Path(path)
    try:
        with path.open("rb") as stream:
            summary = json_summary(stream, 1)
    except OSError:
        return -1
    try:
        table = json.loads(summary)
    except ValueError:
        return -1
    if not isinstance(table, Mapping) or "version" not in table:
        return -1
    version = table["version"]
    return parse_semantic_version(version if isinstance(version, str) else None)