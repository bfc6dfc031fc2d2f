"""Marshaling of ambient request state into a request value object.

The host framework keeps incoming request data in five ambient stores (query
string, form body, uploaded files, server variables and the raw body), with
every text value backslash-escaped. ``EnvironmentSource`` captures those
stores so ``build_request_from_globals`` stays a pure function of its input.
"""

import logging
import mimetypes
import os
import re
import sys
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, BinaryIO, Callable, Dict, Optional, Tuple
from urllib.parse import parse_qsl

import python_multipart
from fastapi import Request
from starlette.datastructures import UploadFile as StarletteUploadFile


logger = logging.getLogger(__name__)

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")

# Server variables that carry headers without the HTTP_ prefix
_UNPREFIXED_HEADERS = {"CONTENT_TYPE", "CONTENT_LENGTH", "CONTENT_MD5"}

_SLASH_RE = re.compile(r"\\(.?)", re.DOTALL)

# PHP-style upload error codes
UPLOAD_ERR_OK = 0
UPLOAD_ERR_NO_FILE = 4


@dataclass
class UploadedFile:
    """Descriptor of one uploaded file, as kept in the files store."""

    name: str
    type: str
    tmp_name: str
    error: int = UPLOAD_ERR_OK
    size: int = 0


def _unslash_text(text: str) -> str:
    def _replace(match: "re.Match[str]") -> str:
        char = match.group(1)
        return "\x00" if char == "0" else char

    return _SLASH_RE.sub(_replace, text)


def unslash(value: Any) -> Any:
    """Remove host-level backslash escaping from strings, recursively."""
    if isinstance(value, str):
        return _unslash_text(value)
    if isinstance(value, Mapping):
        return {key: unslash(item) for key, item in value.items()}
    if isinstance(value, list):
        return [unslash(item) for item in value]
    return value


def add_slashes(value: Any) -> Any:
    """Backslash-escape quotes, backslashes and NUL, recursively."""
    if isinstance(value, str):
        return (
            value.replace("\\", "\\\\")
            .replace("'", "\\'")
            .replace('"', '\\"')
            .replace("\x00", "\\0")
        )
    if isinstance(value, Mapping):
        return {key: add_slashes(item) for key, item in value.items()}
    if isinstance(value, list):
        return [add_slashes(item) for item in value]
    return value


def canonicalize_header_name(name: str) -> str:
    return name.lower().replace("_", "-")


def get_headers(server: Mapping[str, Any]) -> Dict[str, Any]:
    """Extract request headers from server variables.

    ``HTTP_X_FORWARDED_FOR`` becomes ``x-forwarded-for``; the content
    headers that CGI passes without a prefix are included as well.
    """
    headers: Dict[str, Any] = {}
    for key, value in server.items():
        if key.startswith("HTTP_"):
            headers[canonicalize_header_name(key[5:])] = value
        elif key == "REDIRECT_HTTP_AUTHORIZATION" and "HTTP_AUTHORIZATION" not in server:
            headers["authorization"] = value
        elif key in _UNPREFIXED_HEADERS:
            headers[canonicalize_header_name(key)] = value
    return headers


def server_vars_from_request(request: Request) -> Dict[str, str]:
    """CGI-style server variables for a Starlette/FastAPI request."""
    query = request.url.query
    server = {
        "REQUEST_METHOD": request.method,
        "REQUEST_URI": f"{request.url.path}?{query}" if query else request.url.path,
        "QUERY_STRING": query,
        "SERVER_PROTOCOL": f"HTTP/{request.scope.get('http_version', '1.1')}",
    }
    if request.client:
        server["REMOTE_ADDR"] = request.client.host

    for name, value in request.headers.items():
        key = name.upper().replace("-", "_")
        if key not in _UNPREFIXED_HEADERS:
            key = f"HTTP_{key}"
        # Repeated headers are joined the way CGI gateways do it
        server[key] = f"{server[key]}, {value}" if key in server else value

    return server


def _spool(name: str, content_type: str, contents: bytes) -> UploadedFile:
    # An empty file part means the form field was left blank
    if not name:
        return UploadedFile(name="", type=content_type, tmp_name="", error=UPLOAD_ERR_NO_FILE)

    with tempfile.NamedTemporaryFile(prefix="upload-", delete=False) as tmp:
        tmp.write(contents)

    return UploadedFile(
        name=name,
        type=content_type,
        tmp_name=tmp.name,
        error=UPLOAD_ERR_OK,
        size=len(contents),
    )


async def _spool_upload(upload: StarletteUploadFile) -> UploadedFile:
    contents = await upload.read()
    return _spool(upload.filename or "", upload.content_type or "", contents)


def _content_length(environ: Mapping[str, str]) -> int:
    try:
        return max(int(environ.get("CONTENT_LENGTH") or 0), 0)
    except ValueError:
        return 0


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value or ""


def _parse_multipart(environ: Mapping[str, str], body: bytes) -> Tuple[Dict[str, Any], Dict[str, UploadedFile]]:
    post: Dict[str, Any] = {}
    files: Dict[str, UploadedFile] = {}

    def on_field(form_field) -> None:
        post[_text(form_field.field_name)] = _text(form_field.value)

    def on_file(form_file) -> None:
        name = _text(form_file.file_name)
        form_file.file_object.seek(0)
        contents = form_file.file_object.read()
        form_file.close()
        files[_text(form_file.field_name)] = _spool(name, mimetypes.guess_type(name)[0] or "", contents)

    headers = {
        "Content-Type": environ.get("CONTENT_TYPE", ""),
        "Content-Length": str(len(body)),
    }
    python_multipart.parse_form(headers, BytesIO(body), on_field, on_file)
    return post, files


@dataclass(frozen=True)
class EnvironmentSource:
    """Snapshot of the five ambient request stores."""

    query: Dict[str, Any] = field(default_factory=dict)
    post: Dict[str, Any] = field(default_factory=dict)
    files: Dict[str, UploadedFile] = field(default_factory=dict)
    server: Dict[str, Any] = field(default_factory=dict)
    raw_body: Callable[[], bytes] = lambda: b""

    @classmethod
    async def from_request(cls, request: Request) -> "EnvironmentSource":
        """Capture a FastAPI/Starlette request.

        Form uploads are written to temporary files that the upload handler
        later moves into storage; call ``cleanup()`` (or use the source as a
        context manager) to drop the ones that were not moved.
        """
        # Read the body first so it stays available after form parsing
        body = await request.body()

        post: Dict[str, Any] = {}
        files: Dict[str, UploadedFile] = {}
        content_type = request.headers.get("content-type", "")
        if content_type.startswith(FORM_CONTENT_TYPES):
            form = await request.form()
            for key, value in form.multi_items():
                if isinstance(value, StarletteUploadFile):
                    files[key] = await _spool_upload(value)
                else:
                    post[key] = value

        return cls(
            query=add_slashes(dict(request.query_params)),
            post=add_slashes(post),
            files=files,
            server=add_slashes(server_vars_from_request(request)),
            raw_body=lambda: body,
        )

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None, stdin: Optional[BinaryIO] = None) -> "EnvironmentSource":
        """Capture a CGI process: variables from the environment, body from stdin.

        The body is read once; url-encoded and multipart bodies also fill the
        post and files stores.
        """
        environ = dict(os.environ if environ is None else environ)
        query = dict(parse_qsl(environ.get("QUERY_STRING", ""), keep_blank_values=True))

        length = _content_length(environ)
        if length:
            stream = stdin if stdin is not None else sys.stdin.buffer
            body = stream.read(length)
        else:
            body = b""

        post: Dict[str, Any] = {}
        files: Dict[str, UploadedFile] = {}
        content_type = environ.get("CONTENT_TYPE", "")
        if body and content_type.startswith("application/x-www-form-urlencoded"):
            post = dict(parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True))
        elif body and content_type.startswith("multipart/form-data"):
            post, files = _parse_multipart(environ, body)

        return cls(
            query=add_slashes(query),
            post=add_slashes(post),
            files=files,
            server=add_slashes(environ),
            raw_body=lambda: body,
        )

    def cleanup(self) -> None:
        """Remove temporary files of uploads that were never moved into storage."""
        for upload in self.files.values():
            if upload.tmp_name and os.path.exists(upload.tmp_name):
                os.remove(upload.tmp_name)

    def __enter__(self) -> "EnvironmentSource":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cleanup()


@dataclass
class PluginRequest:
    """Request value object handed to plugin route callbacks."""

    method: str = "GET"
    route: str = "/"
    query_params: Dict[str, Any] = field(default_factory=dict)
    body_params: Dict[str, Any] = field(default_factory=dict)
    file_params: Dict[str, UploadedFile] = field(default_factory=dict)
    headers: Dict[str, Any] = field(default_factory=dict)
    body: bytes = b""

    def get_header(self, name: str) -> Optional[Any]:
        return self.headers.get(canonicalize_header_name(name))

    def get_param(self, name: str) -> Optional[Any]:
        # Body parameters take precedence over the query string
        if name in self.body_params:
            return self.body_params[name]
        return self.query_params.get(name)


def build_request_from_globals(source: Optional[EnvironmentSource] = None) -> PluginRequest:
    """Build a POST request to ``/`` from the ambient request stores.

    Without an explicit source the current CGI process environment is used.
    """
    if source is None:
        source = EnvironmentSource.from_environ()

    request = PluginRequest(method="POST", route="/")
    request.query_params = unslash(source.query)
    request.body_params = unslash(source.post)
    request.file_params = source.files
    request.headers = unslash(get_headers(source.server))
    request.body = source.raw_body()

    logger.debug(
        f"Built request with {len(request.query_params)} query, {len(request.body_params)} body, "
        f"{len(request.file_params)} file params and {len(request.body)} body bytes"
    )
    return request
