"""Fetching, verifying and unpacking plugin archives."""

from __future__ import annotations

import hashlib
import io
import logging
import os
import re
import shutil
import struct
import tarfile
import urllib.error
import urllib.request
import zipfile
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import IO, Protocol

log = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
_SNIFF_LENGTH = 512
_HEX_PREFIX_RE = re.compile(r"(?:[0-9a-fA-F]{2})*")


class DownloadError(Exception):
    """Raised when an archive cannot be fetched, verified or extracted."""


class _Verifier(Protocol):
    def write(self, data: bytes) -> int: ...

    def verify(self) -> None: ...


class _Fetcher(Protocol):
    def get(self, uri: str) -> IO[bytes]: ...


Extractor = Callable[[str, bytes], None]


class Sha256Verifier:
    """Accumulates written data and checks its SHA-256 digest."""

    def __init__(self, hashed: str) -> None:
        # Like a lenient hex decoder: keep what decodes before the first bad pair.
        self.wanted = bytes.fromhex(_HEX_PREFIX_RE.match(hashed).group(0))
        self._hash = hashlib.sha256()

    def write(self, data: bytes) -> int:
        """Feed ``data`` into the digest and return its length."""
        self._hash.update(data)
        return len(data)

    def verify(self) -> None:
        """Raise DownloadError unless the digest matches the wanted one."""
        log.debug("Compare sha256 (%s) signed version", self.wanted.hex())
        got = self._hash.digest()
        if got != self.wanted:
            raise DownloadError(
                f"checksum does not match, want: {self.wanted.hex()}, got {got.hex()}"
            )


class HTTPFetcher:
    """Fetches files over http:// and https://."""

    def get(self, uri: str) -> IO[bytes]:
        """Open ``uri`` and return a readable binary stream of its body."""
        log.debug("Fetching %r", uri)
        try:
            resp = urllib.request.urlopen(uri)
        except urllib.error.HTTPError as exc:
            exc.close()
            raise DownloadError(f"failed to download {uri!r}, status code {exc.code}") from None
        except (urllib.error.URLError, ValueError, OSError) as exc:
            raise DownloadError(f"failed to download {uri!r}: {exc}") from exc
        if resp.status > 200:
            resp.close()
            raise DownloadError(f"failed to download {uri!r}, status code {resp.status}")
        return resp


@dataclass(frozen=True)
class FileFetcher:
    """Reads a local archive file regardless of the requested URI."""

    path: str

    def get(self, uri: str) -> IO[bytes]:
        """Open the local file for reading; ``uri`` is ignored."""
        log.debug("Reading %r", self.path)
        try:
            return open(self.path, "rb")
        except OSError as exc:
            raise DownloadError(
                f"failed to open archive file {self.path!r} for reading: {exc}"
            ) from exc


def download(url: str, verifier: _Verifier, fetcher: _Fetcher) -> bytes:
    """Fetch ``url`` into memory, feeding it through ``verifier``, and verify it."""
    try:
        body = fetcher.get(url)
    except (OSError, DownloadError) as exc:
        raise DownloadError(f"failed to obtain plugin archive: {exc}") from exc

    log.debug("Reading archive file into memory")
    data = bytearray()
    with body:
        try:
            for chunk in iter(lambda: body.read(_CHUNK_SIZE), b""):
                verifier.write(chunk)
                data += chunk
        except OSError as exc:
            raise DownloadError(f"could not read archive: {exc}") from exc
    log.debug("Read %d bytes from archive into memory", len(data))

    verifier.verify()
    return bytes(data)


def _create_file(path: str, mode: int, truncate: bool) -> IO[bytes]:
    flags = os.O_CREAT | os.O_WRONLY | (os.O_TRUNC if truncate else 0)
    return os.fdopen(os.open(path, flags, mode), "wb")


def _target_path(target_dir: str, name: str) -> str:
    return os.path.join(target_dir, name.replace("/", os.sep))


def extract_zip(target_dir: str, data: bytes) -> None:
    """Extract a zip archive held in ``data`` into ``target_dir``."""
    log.debug("Extracting zip archive to %r", target_dir)
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, OSError) as exc:
        raise DownloadError(f"failed to read zip archive: {exc}") from exc

    with archive:
        for info in archive.infolist():
            suspicious_path(info.filename)
            path = _target_path(target_dir, info.filename)
            mode = (info.external_attr >> 16) & 0o777

            if info.is_dir():
                try:
                    os.makedirs(path, mode or 0o777, exist_ok=True)
                except OSError as exc:
                    raise DownloadError(f"can't create directory tree: {exc}") from exc
                continue

            parent = os.path.dirname(path)
            log.debug("zip: ensuring parent dirs exist for regular file, dir=%s", parent)
            try:
                os.makedirs(parent, 0o755, exist_ok=True)
            except OSError as exc:
                raise DownloadError(f"failed to create directory for zip entry: {exc}") from exc

            try:
                src = archive.open(info)
            except (zipfile.BadZipFile, OSError, RuntimeError) as exc:
                raise DownloadError(f"could not open inflating zip file: {exc}") from exc
            with src:
                try:
                    dst = _create_file(path, mode or 0o666, truncate=True)
                except OSError as exc:
                    raise DownloadError(
                        f"can't create file in zip destination dir: {exc}"
                    ) from exc
                with dst:
                    try:
                        shutil.copyfileobj(src, dst)
                    except (zipfile.BadZipFile, OSError) as exc:
                        raise DownloadError(
                            f"can't copy content to zip destination file: {exc}"
                        ) from exc


def extract_tar_gz(target_dir: str, data: bytes) -> None:
    """Extract a gzipped tar archive held in ``data`` into ``target_dir``."""
    log.debug("tar: extracting to %r", target_dir)
    try:
        archive = tarfile.open(fileobj=io.BytesIO(data), mode="r:gz")
    except (tarfile.TarError, OSError, EOFError) as exc:
        raise DownloadError(f"failed to create gzip reader: {exc}") from exc

    with archive:
        while True:
            try:
                member = archive.next()
            except (tarfile.TarError, OSError, EOFError) as exc:
                raise DownloadError(f"tar extraction error: {exc}") from exc
            if member is None:
                break
            log.debug("tar: processing %r (type=%r, mode=%o)", member.name, member.type, member.mode)
            if member.name == "pax_global_header":
                log.debug("tar: skipping pax_global_header file")
                continue

            suspicious_path(member.name)
            path = _target_path(target_dir, member.name)

            if member.type == tarfile.DIRTYPE:
                try:
                    os.makedirs(path, member.mode, exist_ok=True)
                except OSError as exc:
                    raise DownloadError(f"failed to create directory from tar: {exc}") from exc
            elif member.type in (tarfile.REGTYPE, tarfile.AREGTYPE):
                parent = os.path.dirname(path)
                log.debug("tar: ensuring parent dirs exist for regular file, dir=%s", parent)
                try:
                    os.makedirs(parent, 0o755, exist_ok=True)
                except OSError as exc:
                    raise DownloadError(f"failed to create directory for tar: {exc}") from exc
                try:
                    dst = _create_file(path, member.mode, truncate=False)
                except OSError as exc:
                    raise DownloadError(f"failed to create file {path!r}: {exc}") from exc
                with dst:
                    try:
                        src = archive.extractfile(member)
                        shutil.copyfileobj(src, dst)
                    except (tarfile.TarError, OSError, EOFError) as exc:
                        raise DownloadError(
                            f"failed to copy {member.name!r} from tar into file: {exc}"
                        ) from exc
            else:
                raise DownloadError(
                    f"unable to handle file type {member.type!r} for {member.name!r} in tar"
                )
            log.debug("tar: processed %r", member.name)
    log.debug("tar extraction to %s complete", target_dir)


def suspicious_path(path: str) -> None:
    """Raise DownloadError for archive entries that climb up or are absolute."""
    if ".." in path:
        raise DownloadError(f"refusing to unpack archive with suspicious entry {path!r}")
    if path.startswith(("/", "\\")):
        raise DownloadError(f"refusing to unpack archive with absolute entry {path!r}")


# Content sniffing, following the WHATWG MIME sniffing rules.

_WHITESPACE = b"\t\n\x0c\r "
_BINARY_BYTES = frozenset(
    [*range(0x00, 0x09), 0x0B, *range(0x0E, 0x1B), *range(0x1C, 0x20)]
)

_Matcher = Callable[[bytes], bool]


def _html_sig(tag: bytes) -> _Matcher:
    def match(data: bytes) -> bool:
        data = data.lstrip(_WHITESPACE)
        if len(data) < len(tag) + 1:
            return False
        for expected, actual in zip(tag, data):
            if 0x41 <= expected <= 0x5A:
                actual &= 0xDF
            if expected != actual:
                return False
        return data[len(tag)] in b" >"

    return match


def _masked_sig(pattern: bytes, mask: bytes, skip_ws: bool = False) -> _Matcher:
    def match(data: bytes) -> bool:
        if skip_ws:
            data = data.lstrip(_WHITESPACE)
        if len(data) < len(pattern):
            return False
        return all(d & m == p for d, m, p in zip(data, mask, pattern))

    return match


def _exact_sig(signature: bytes) -> _Matcher:
    return lambda data: data.startswith(signature)


def _riff_sig(kind: bytes) -> _Matcher:
    pattern = b"RIFF\x00\x00\x00\x00" + kind
    mask = b"\xff\xff\xff\xff\x00\x00\x00\x00" + b"\xff" * len(kind)
    return _masked_sig(pattern, mask)


def _mp4_sig(data: bytes) -> bool:
    if len(data) < 12:
        return False
    box_size = struct.unpack(">I", data[:4])[0]
    if box_size % 4 != 0 or len(data) < box_size:
        return False
    if data[4:8] != b"ftyp":
        return False
    return any(data[st : st + 3] == b"mp4" for st in range(8, box_size, 4) if st != 12)


_HTML_TAGS = (
    b"<!DOCTYPE HTML", b"<HTML", b"<HEAD", b"<SCRIPT", b"<IFRAME", b"<H1", b"<DIV",
    b"<FONT", b"<TABLE", b"<A", b"<STYLE", b"<TITLE", b"<B", b"<BODY", b"<BR", b"<P",
    b"<!--",
)

_SIGNATURES: list[tuple[_Matcher, str]] = [
    *((_html_sig(tag), "text/html; charset=utf-8") for tag in _HTML_TAGS),
    (_masked_sig(b"<?xml", b"\xff" * 5, skip_ws=True), "text/xml; charset=utf-8"),
    (_exact_sig(b"%PDF-"), "application/pdf"),
    (_exact_sig(b"%!PS-Adobe-"), "application/postscript"),
    (_masked_sig(b"\xfe\xff\x00\x00", b"\xff\xff\x00\x00"), "text/plain; charset=utf-16be"),
    (_masked_sig(b"\xff\xfe\x00\x00", b"\xff\xff\x00\x00"), "text/plain; charset=utf-16le"),
    (_masked_sig(b"\xef\xbb\xbf\x00", b"\xff\xff\xff\x00"), "text/plain; charset=utf-8"),
    (_exact_sig(b"\x00\x00\x01\x00"), "image/x-icon"),
    (_exact_sig(b"\x00\x00\x02\x00"), "image/x-icon"),
    (_exact_sig(b"BM"), "image/bmp"),
    (_exact_sig(b"GIF87a"), "image/gif"),
    (_exact_sig(b"GIF89a"), "image/gif"),
    (_riff_sig(b"WEBPVP"), "image/webp"),
    (_exact_sig(b"\x89PNG\x0d\x0a\x1a\x0a"), "image/png"),
    (_exact_sig(b"\xff\xd8\xff"), "image/jpeg"),
    (
        _masked_sig(b"FORM\x00\x00\x00\x00AIFF", b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff"),
        "audio/aiff",
    ),
    (_exact_sig(b"ID3"), "audio/mpeg"),
    (_exact_sig(b"OggS\x00"), "application/ogg"),
    (_exact_sig(b"MThd\x00\x00\x00\x06"), "audio/midi"),
    (_riff_sig(b"AVI "), "video/avi"),
    (_riff_sig(b"WAVE"), "audio/wave"),
    (_mp4_sig, "video/mp4"),
    (_exact_sig(b"\x1a\x45\xdf\xa3"), "video/webm"),
    (
        _masked_sig(b"\x00" * 34 + b"LP", b"\x00" * 34 + b"\xff\xff"),
        "application/vnd.ms-fontobject",
    ),
    (_exact_sig(b"\x00\x01\x00\x00"), "font/ttf"),
    (_exact_sig(b"OTTO"), "font/otf"),
    (_exact_sig(b"ttcf"), "font/collection"),
    (_exact_sig(b"wOFF"), "font/woff"),
    (_exact_sig(b"wOF2"), "font/woff2"),
    (_exact_sig(b"\x1f\x8b\x08"), "application/x-gzip"),
    (_exact_sig(b"PK\x03\x04"), "application/zip"),
    (_exact_sig(b"Rar!\x1a\x07\x00"), "application/x-rar-compressed"),
    (_exact_sig(b"Rar!\x1a\x07\x01\x00"), "application/x-rar-compressed"),
    (_exact_sig(b"\x00\x61\x73\x6d"), "application/wasm"),
    (
        lambda data: not _BINARY_BYTES.intersection(data.lstrip(_WHITESPACE)),
        "text/plain; charset=utf-8",
    ),
]


def _sniff(data: bytes) -> str:
    data = data[:_SNIFF_LENGTH]
    for matcher, content_type in _SIGNATURES:
        if matcher(data):
            return content_type
    return "application/octet-stream"


def detect_mime_type(data: bytes) -> str:
    """Return the MIME type sniffed from the first 512 bytes, without parameters."""
    if len(data) < _SNIFF_LENGTH:
        log.debug("Did only read %d of 512 bytes to determine the file type", len(data))
    return _sniff(data).split(";")[0]


DEFAULT_EXTRACTORS: Mapping[str, Extractor] = {
    "application/zip": extract_zip,
    "application/x-gzip": extract_tar_gz,
}


def extract_archive(dst: str, data: bytes, extractors: Mapping[str, Extractor] | None = None) -> None:
    """Extract ``data`` into ``dst`` with the extractor for its sniffed type."""
    if extractors is None:
        extractors = DEFAULT_EXTRACTORS
    content_type = detect_mime_type(data)
    log.debug("detected %r file type", content_type)
    extractor = extractors.get(content_type)
    if extractor is None:
        raise DownloadError(
            f"mime type {content_type!r} for archive file is not a supported archive format"
        )
    try:
        extractor(dst, data)
    except (DownloadError, OSError) as exc:
        raise DownloadError(f"failed to extract file: {exc}") from exc


class Downloader:
    """Fetches, verifies and extracts a plugin archive."""

    def __init__(self, verifier: _Verifier, fetcher: _Fetcher) -> None:
        self.verifier = verifier
        self.fetcher = fetcher

    def get(self, uri: str, dst: str) -> None:
        """Download ``uri``, verify it and extract it into ``dst``."""
        data = download(uri, self.verifier, self.fetcher)
        extract_archive(dst, data)