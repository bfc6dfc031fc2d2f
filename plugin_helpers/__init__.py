"""Static helpers for content-management plugins.

Each helper stands on its own: plugin version lookup, media uploads and
deletion, request marshaling, lenient JSON decoding, keyed-data utilities
and client IP resolution, plus request hooks for an embedding FastAPI app.
"""

from .core.arrays import array_merge_deep, is_one_level_array, remove_null_values
from .core.errors import UploadError
from .core.json_utils import maybe_json_decode
from .core.middleware import global_exception_handler, log_requests, register_middleware, upload_error_handler
from .core.network import get_client_ip
from .core.plugins import get_plugin_version
from .core.request import EnvironmentSource, PluginRequest, UploadedFile, build_request_from_globals
from .services.media import delete_attachments_by_ids, upload_file

__all__ = [
    "EnvironmentSource",
    "PluginRequest",
    "UploadError",
    "UploadedFile",
    "array_merge_deep",
    "build_request_from_globals",
    "delete_attachments_by_ids",
    "get_client_ip",
    "get_plugin_version",
    "global_exception_handler",
    "is_one_level_array",
    "log_requests",
    "maybe_json_decode",
    "register_middleware",
    "remove_null_values",
    "upload_error_handler",
    "upload_file",
]
