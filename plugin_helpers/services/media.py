import logging
import os
from datetime import datetime, timezone
from io import BytesIO
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from PIL import Image, UnidentifiedImageError
from supabase import create_client, Client

from ..core.config import Config
from ..core.errors import UploadError
from ..core.request import UPLOAD_ERR_OK, UploadedFile
from ..core.validation import sanitize_file_name, validate_file


logger = logging.getLogger(__name__)

# Form action expected when the upload handler checks the submitting form
FORM_ACTION = "upload-attachment"

# Storage list() returns at most this many objects per call
LIST_PAGE_SIZE = 100

UPLOAD_ERROR_MESSAGES = {
    1: "The uploaded file exceeds the maximum upload size allowed by the server.",
    2: "The uploaded file exceeds the maximum file size that was specified in the HTML form.",
    3: "The uploaded file was only partially uploaded.",
    4: "No file was uploaded.",
    6: "Missing a temporary folder.",
    7: "Failed to write file to disk.",
    8: "File upload stopped by extension.",
}


def get_client() -> Client:
    Config.validate()
    return create_client(Config.SUPABASE_URL, Config.SUPABASE_SERVICE_KEY)


def _mime_type_for(file_path: str) -> str:
    ext = os.path.splitext(file_path.lower())[1]
    return Config.allowed_mime_types().get(ext, "application/octet-stream")


def _storage_error(result: Any) -> Optional[str]:
    if isinstance(result, dict):
        return result.get('error') or None
    if hasattr(result, 'error') and getattr(result, 'error'):
        return str(getattr(result, 'error'))
    status_code = getattr(result, 'status_code', None)
    if isinstance(status_code, int) and status_code >= 400:
        return f"HTTP {status_code}: {getattr(result, 'text', None)}"
    return None


def _existing_names(bucket: Any, folder: str, prefix: str) -> Set[str]:
    """Names in ``folder`` starting with ``prefix``, across every listing page."""
    names: Set[str] = set()
    offset = 0
    while True:
        page = bucket.list(folder, {
            "limit": LIST_PAGE_SIZE,
            "offset": offset,
            "search": prefix,
            "sortBy": {"column": "name", "order": "asc"},
        }) or []
        names.update(item.get('name') for item in page)
        if len(page) < LIST_PAGE_SIZE:
            return names
        offset += LIST_PAGE_SIZE


def _unique_object_path(bucket: Any, folder: str, filename: str) -> str:
    """Pick ``folder/filename``, suffixing ``-1``, ``-2``... on name clashes."""
    base, ext = os.path.splitext(filename)
    try:
        existing = _existing_names(bucket, folder, base)
    except Exception as e:
        logger.warning(f"Could not list {folder} to check for name clashes: {e}")
        existing = set()

    candidate = filename
    suffix = 1
    while candidate in existing:
        candidate = f"{base}-{suffix}{ext}"
        suffix += 1
    return f"{folder}/{candidate}"


def handle_upload(file: UploadedFile, overrides: Optional[Dict[str, Any]] = None, form_action: Optional[str] = None) -> Dict[str, Any]:
    """Validate an uploaded file and move it into the media bucket.

    Failures are reported as ``{"error": message}`` rather than raised. On
    success the temporary file is removed and the stored object is described
    by ``file`` (object path), ``url`` (public URL) and ``type`` (MIME type).
    """
    overrides = overrides or {}

    if overrides.get('test_form', True) and form_action != FORM_ACTION:
        return {'error': "Invalid form submission."}

    if file.error != UPLOAD_ERR_OK:
        return {'error': UPLOAD_ERROR_MESSAGES.get(file.error, "Unknown upload error.")}

    if file.size == 0:
        return {'error': "File is empty. Please upload something more substantial."}

    if not file.tmp_name or not os.path.isfile(file.tmp_name):
        return {'error': "Specified file failed upload test."}

    message = validate_file(file.name, file.type, file.size)
    if message:
        return {'error': message}

    file_ext = os.path.splitext(file.name.lower())[1]
    content_type = Config.allowed_mime_types()[file_ext]
    filename = sanitize_file_name(file.name)
    if os.path.splitext(filename.lower())[1] != file_ext:
        filename = f"upload{file_ext}"

    now = datetime.now(timezone.utc)
    folder = f"{Config.UPLOADS_PREFIX}/{now:%Y}/{now:%m}"

    supabase: Client = get_client()
    bucket = supabase.storage.from_(Config.SUPABASE_BUCKET)
    file_path = _unique_object_path(bucket, folder, filename)

    with open(file.tmp_name, 'rb') as f:
        contents = f.read()

    try:
        upload_result = bucket.upload(
            path=file_path,
            file=contents,
            file_options={
                "content-type": content_type,
                "cache-control": "3600",
            },
        )
        upload_error = _storage_error(upload_result)
        if upload_error:
            raise RuntimeError(upload_error)
    except Exception as e:
        logger.error(f"Failed to move {file.name!r} to {file_path}: {e}")
        return {'error': f"The uploaded file could not be moved to {folder}."}

    url = bucket.get_public_url(file_path)
    os.remove(file.tmp_name)

    return {
        'file': file_path,
        'url': url,
        'type': content_type,
    }


def insert_attachment(record: Dict[str, Any], file_path: str) -> int:
    """Persist an attachment row for ``file_path`` and return its id."""
    supabase: Client = get_client()
    try:
        result = supabase.table(Config.ATTACHMENTS_TABLE).insert({**record, 'file': file_path}).execute()
    except Exception as e:
        logger.error(f"Failed to insert attachment for {file_path}: {e}")
        raise UploadError(f"Could not insert attachment into the database: {e}", status_code=500)

    if not result.data:
        raise UploadError("Could not insert attachment into the database.", status_code=500)

    return int(result.data[0]['id'])


def generate_attachment_metadata(attachment_id: int, file_path: str) -> Dict[str, Any]:
    """Describe a stored attachment: size, MIME type and image dimensions."""
    mime_type = _mime_type_for(file_path)
    metadata: Dict[str, Any] = {'file': file_path, 'mime_type': mime_type}

    try:
        supabase: Client = get_client()
        contents = supabase.storage.from_(Config.SUPABASE_BUCKET).download(file_path)
    except Exception as e:
        logger.error(f"Failed to download {file_path} for attachment {attachment_id}: {e}")
        return metadata

    metadata['filesize'] = len(contents)

    if mime_type.startswith('image/'):
        try:
            with Image.open(BytesIO(contents)) as img:
                width, height = img.size
            metadata['width'] = width
            metadata['height'] = height
        except (UnidentifiedImageError, OSError) as e:
            logger.warning(f"Could not read image dimensions for attachment {attachment_id}: {e}")

    return metadata


def update_attachment_metadata(attachment_id: int, metadata: Dict[str, Any]) -> bool:
    try:
        supabase: Client = get_client()
        result = (
            supabase
            .table(Config.ATTACHMENTS_TABLE)
            .update({'metadata': metadata})
            .eq('id', attachment_id)
            .execute()
        )
        return bool(result.data)
    except Exception as e:
        logger.error(f"Failed to update metadata for attachment {attachment_id}: {e}")
        raise


def _remove_object(file_path: str) -> None:
    # Stored objects without an attachment row are unreachable
    try:
        supabase: Client = get_client()
        supabase.storage.from_(Config.SUPABASE_BUCKET).remove([file_path])
    except Exception as e:
        logger.error(f"Failed to remove orphaned object {file_path}: {e}")


def upload_file(file: UploadedFile, create_attachment: bool = False) -> Union[Dict[str, Any], int]:
    """Move an uploaded file into the media library.

    Returns the stored file record, or the new attachment id when
    ``create_attachment`` is set. Raises UploadError when the file cannot
    be stored.
    """
    upload = handle_upload(file, overrides={'test_form': False})

    if 'error' in upload:
        logger.error(f"Upload of {file.name!r} failed: {upload['error']}")
        raise UploadError(upload['error'])

    if not create_attachment:
        return upload

    attachment = {
        'guid': upload['url'],
        'post_mime_type': upload['type'],
        'post_title': sanitize_file_name(file.name),
        'post_content': '',
        'post_status': 'inherit',
    }

    try:
        attachment_id = insert_attachment(attachment, upload['file'])
    except UploadError:
        _remove_object(upload['file'])
        raise

    update_attachment_metadata(attachment_id, generate_attachment_metadata(attachment_id, upload['file']))

    return attachment_id


def delete_attachment(attachment_id: int, force_delete: bool = True) -> Optional[Dict[str, Any]]:
    """Delete an attachment row and its stored object.

    Returns the deleted row, or None when nothing was deleted.
    """
    if not force_delete:
        logger.warning(f"Attachment {attachment_id} not deleted: the media library has no trash")
        return None

    try:
        supabase: Client = get_client()

        check_result = supabase.table(Config.ATTACHMENTS_TABLE).select('*').eq('id', attachment_id).execute()
        if not check_result.data:
            logger.info(f"No attachment found with ID {attachment_id}")
            return None

        attachment = check_result.data[0]
        if attachment.get('file'):
            supabase.storage.from_(Config.SUPABASE_BUCKET).remove([attachment['file']])

        supabase.table(Config.ATTACHMENTS_TABLE).delete().eq('id', attachment_id).execute()

        return attachment
    except Exception as e:
        logger.error(f"Failed to delete attachment {attachment_id}: {e}")
        return None


def delete_attachments_by_ids(ids: Union[int, Iterable[int]]) -> List[int]:
    """Force-delete attachments, returning the ids that were deleted."""
    if isinstance(ids, int):
        ids = [ids]

    deleted: List[int] = []
    for attachment_id in ids:
        if delete_attachment(attachment_id, force_delete=True):
            deleted.append(attachment_id)

    return deleted
