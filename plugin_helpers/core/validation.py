import ipaddress
import logging
import os
import re
from typing import Any, Optional

from .config import Config


logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r'<[^>]*>?')
_WHITESPACE_RE = re.compile(r'[\r\n\t ]+')
_OCTET_RE = re.compile(r'%[a-f0-9]{2}', re.IGNORECASE)
_CONTROL_RE = re.compile(r'[\x00-\x1f\x7f]')

# Characters the media library refuses in stored file names
_FILENAME_SPECIAL_CHARS = set('?[]/\\=<>:;,\'"&$#*()|~`!{}%+’«»”“\x00')


def is_valid_ip(value: Any) -> bool:
    """Return True for a plain IPv4 or IPv6 address in textual form."""
    if not isinstance(value, str) or not value:
        return False
    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        return False
    # Zone-scoped IPv6 literals ("fe80::1%eth0") are not client addresses
    if getattr(address, "scope_id", None):
        return False
    return True


def sanitize_text_field(value: Any) -> str:
    """Strip tags, control characters, line breaks and percent-encoded octets."""
    filtered = str(value)
    if '<' in filtered:
        filtered = _TAG_RE.sub('', filtered)
    filtered = _WHITESPACE_RE.sub(' ', filtered)
    filtered = _CONTROL_RE.sub('', filtered).strip()

    found = False
    while _OCTET_RE.search(filtered):
        filtered = _OCTET_RE.sub('', filtered)
        found = True
    if found:
        filtered = re.sub(r' +', ' ', filtered).strip()

    return filtered


def sanitize_file_name(filename: str) -> str:
    """Make an uploaded file name safe to use as a storage object name."""
    name = filename.replace('\xa0', ' ')
    name = ''.join(ch for ch in name if ch not in _FILENAME_SPECIAL_CHARS)
    name = re.sub(r'[\r\n\t -]+', '-', name)
    return name.strip('.-_')


def validate_file(filename: str, content_type: Optional[str], size: int) -> Optional[str]:
    """Check an upload against the media library rules.

    Returns the error message for the first failed rule, or None when the
    file is acceptable.
    """
    if size > Config.MAX_UPLOAD_SIZE:
        logger.warning(f"Rejected upload {filename!r}: {size} bytes exceeds {Config.MAX_UPLOAD_SIZE}")
        return "File exceeds the maximum upload size."

    if not filename:
        return "No file name provided."

    if '..' in filename or '/' in filename or '\\' in filename:
        logger.warning(f"Rejected upload with path traversal characters: {filename!r}")
        return "Sorry, you are not allowed to upload this file type."

    allowed = Config.allowed_mime_types()
    file_ext = os.path.splitext(filename.lower())[1]
    if file_ext not in allowed:
        return "Sorry, you are not allowed to upload this file type."

    if content_type and content_type != allowed[file_ext]:
        logger.warning(f"Rejected upload {filename!r}: MIME type {content_type} does not match {file_ext}")
        return "Sorry, you are not allowed to upload this file type."

    return None
