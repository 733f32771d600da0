import os
import shutil
import logging
import collections

from .config import Credentials, Locator
from .errors import ValidationError
from .signer import uri_encode_path
from .transport import Client
from .upload import upload_file

logger = logging.getLogger(__name__)

RemoteRef = collections.namedtuple("RemoteRef", ["alias", "bucket", "key"])
LocalRef = collections.namedtuple("LocalRef", ["path"])

def classify_ref(aliases, value):
    try:
        locator = Locator.parse(value)
    except ValidationError:
        return LocalRef(value)

    alias = aliases.get(locator.alias)
    if alias is not None and locator.bucket and locator.key:
        return RemoteRef(alias, locator.bucket, locator.key)
    return LocalRef(value)

def copy_source_header(bucket, key):
    return f"/{uri_encode_path(bucket)}/{uri_encode_path(key)}"

def _client(ref, transport_config):
    return Client(Credentials.from_alias(ref.alias), transport_config)

def _ensure_parent(path):
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)

def copy_or_move(aliases, transport_config, source, target, move=False):
    src = classify_ref(aliases, source)
    dst = classify_ref(aliases, target)

    try:
        _transfer(src, dst, transport_config, move)
    except OSError as e:
        action = "move" if move else "copy"
        raise ValidationError(
            f"cannot {action} {source} to {target}: {e}") from e

    return src, dst

def _transfer(src, dst, transport_config, move):
    if isinstance(src, LocalRef) and isinstance(dst, RemoteRef):
        if not os.path.isfile(src.path):
            raise ValidationError(f"source file not found: {src.path}")
        upload_file(_client(dst, transport_config), src.path, dst.bucket,
            dst.key)
        if move:
            os.remove(src.path)

    elif isinstance(src, RemoteRef) and isinstance(dst, LocalRef):
        client = _client(src, transport_config)
        _ensure_parent(dst.path)
        client.request("GET", src.bucket, src.key, sink=dst.path)
        if move:
            client.request("DELETE", src.bucket, src.key)

    elif isinstance(src, RemoteRef) and isinstance(dst, RemoteRef):
        headers = {
            "x-amz-copy-source": copy_source_header(src.bucket, src.key),
        }
        logger.debug("server-side copy %s/%s -> %s/%s", src.bucket, src.key,
            dst.bucket, dst.key)
        _client(dst, transport_config).request("PUT", dst.bucket, dst.key,
            headers=headers)
        if move:
            _client(src, transport_config).request("DELETE", src.bucket,
                src.key)

    else:
        if not os.path.isfile(src.path):
            raise ValidationError(f"source file not found: {src.path}")
        _ensure_parent(dst.path)
        if move:
            shutil.move(src.path, dst.path)
        else:
            shutil.copyfile(src.path, dst.path)

