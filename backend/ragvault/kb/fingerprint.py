"""Content fingerprinting: content hash and MIME type detection.

Everything here is pure: the same bytes (and filename) always produce the
same fingerprint, with no I/O.
"""
import hashlib
import mimetypes
import os
from typing import Callable, NamedTuple

DEFAULT_MIME_TYPE = "application/octet-stream"

# Types the platform registry is known to miss or disagree on
_EXTENSION_OVERRIDES = {
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".txt": "text/plain",
    ".csv": "text/csv",
    ".json": "application/json",
    ".htm": "text/html",
    ".html": "text/html",
    ".xhtml": "application/xhtml+xml",
    ".pdf": "application/pdf",
}

_MAGIC_SIGNATURES: list[tuple[bytes, str]] = [
    (b"%PDF-", "application/pdf"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"PK\x03\x04", "application/zip"),
    (b"\x1f\x8b", "application/gzip"),
]

_SNIFF_WINDOW = 1024

MimeDetector = Callable[[str, bytes], str | None]


class Fingerprint(NamedTuple):
    """Identity of an uploaded payload."""
    content_hash: str
    mime_type: str


def compute_content_hash(data: bytes) -> str:
    """Compute SHA256 hash of the exact raw bytes."""
    return hashlib.sha256(data).hexdigest()


def detect_from_extension(filename: str, data: bytes) -> str | None:
    """Infer the MIME type from the filename extension."""
    _, ext = os.path.splitext(filename or "")
    ext = ext.lower()
    if not ext:
        return None
    if ext in _EXTENSION_OVERRIDES:
        return _EXTENSION_OVERRIDES[ext]
    mime_type, _ = mimetypes.guess_type(f"file{ext}", strict=False)
    return mime_type


def detect_from_contents(filename: str, data: bytes) -> str | None:
    """Sniff the leading bytes for a known signature, then for markup or text."""
    if not data:
        return None

    for signature, mime_type in _MAGIC_SIGNATURES:
        if data.startswith(signature):
            return mime_type

    head = data[:_SNIFF_WINDOW]
    if b"\x00" in head:
        return None

    try:
        text = head.decode("utf-8")
    except UnicodeDecodeError as e:
        # A multi-byte sequence cut at the window edge is still text
        if e.start < len(head) - 3:
            return None
        text = head[:e.start].decode("utf-8")

    lowered = text.lstrip("\ufeff \t\r\n").lower()
    if lowered.startswith(("<!doctype html", "<html")):
        return "text/html"
    if lowered.startswith(("{", "[")):
        return "application/json"
    return "text/plain"


def default_mime_type(filename: str, data: bytes) -> str | None:
    return DEFAULT_MIME_TYPE


MIME_DETECTORS: tuple[MimeDetector, ...] = (
    detect_from_extension,
    detect_from_contents,
    default_mime_type,
)


def guess_mime_type(
    filename: str,
    data: bytes,
    detectors: tuple[MimeDetector, ...] = MIME_DETECTORS,
) -> str:
    """
    Run the detector chain and return the first match.

    Args:
        filename: Original filename (may be empty)
        data: Raw file bytes
        detectors: Ordered detector strategies

    Returns:
        A MIME type; never None
    """
    for detector in detectors:
        mime_type = detector(filename, data)
        if mime_type:
            return mime_type
    return DEFAULT_MIME_TYPE


def fingerprint(data: bytes, filename: str = "", mime_type: str | None = None) -> Fingerprint:
    """
    Fingerprint raw bytes.

    Args:
        data: Raw file bytes
        filename: Original filename, used for extension-based detection
        mime_type: Caller-declared MIME type; skips detection when given

    Returns:
        Fingerprint with SHA256 content hash and MIME type
    """
    return Fingerprint(
        content_hash=compute_content_hash(data),
        mime_type=(mime_type or "").strip().lower() or guess_mime_type(filename, data),
    )
