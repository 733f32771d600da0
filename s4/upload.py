import os
import shutil
import logging
import tempfile
import contextlib

from .errors import ValidationError
from .multipart import MULTIPART_THRESHOLD, PART_SIZE, MultipartUpload

logger = logging.getLogger(__name__)

content_types = {
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".json": "application/json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".gz": "application/gzip",
    ".tar": "application/x-tar",
    ".zst": "application/zstd",
    ".xz": "application/x-xz",
    ".parquet": "application/vnd.apache.parquet",
}

def content_type_for(path):
    ext = os.path.splitext(path)[1].lower()
    return content_types.get(ext, "application/octet-stream")

@contextlib.contextmanager
def staged_file(purpose="stage"):
    fd, path = tempfile.mkstemp(prefix=f"s4-{purpose}-{os.getpid()}-")
    os.close(fd)
    try:
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass

def upload_file(client, file_path, bucket, key, headers=None,
        threshold=MULTIPART_THRESHOLD, part_size=PART_SIZE, workers=1):
    if not os.path.isfile(file_path):
        raise ValidationError(f"source file not found: {file_path}")

    headers = dict(headers or {})
    if not any(name.lower() == "content-type" for name in headers):
        headers["Content-Type"] = content_type_for(file_path)

    try:
        size = os.path.getsize(file_path)
        if size >= threshold:
            logger.debug("upload %s (%d bytes) via multipart to %s/%s",
                file_path, size, bucket, key)
            upload = MultipartUpload(client, bucket, key,
                part_size=part_size, headers=headers, workers=workers)
            return upload.upload_file(file_path)

        logger.debug("upload %s (%d bytes) via single put to %s/%s",
            file_path, size, bucket, key)
        return client.request("PUT", bucket, key, headers=headers,
            body=file_path)
    except OSError as e:
        raise ValidationError(f"cannot read {file_path}: {e}") from e

def upload_stream(client, stream, bucket, key, **kwargs):
    with staged_file("pipe") as path:
        try:
            with open(path, "wb") as f:
                shutil.copyfileobj(stream, f)
        except OSError as e:
            raise ValidationError(f"cannot stage input: {e}") from e
        return upload_file(client, path, bucket, key, **kwargs)
