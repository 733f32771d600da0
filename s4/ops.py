import time
import base64
import hashlib
import logging

from .config import DEFAULT_REGION
from .errors import ValidationError
from .listing import list_object_keys
from .sync import glob_match
from .xmlscan import xml_escape

logger = logging.getLogger(__name__)

RETENTION_MODES = ("GOVERNANCE", "COMPLIANCE")

def content_md5(body):
    return base64.b64encode(hashlib.md5(body).digest()).decode("ascii")

def make_bucket(client, bucket, with_lock=False):
    headers = {}
    body = None
    if with_lock:
        headers["x-amz-bucket-object-lock-enabled"] = "true"
    region = client.credentials.region
    if region and region != DEFAULT_REGION:
        body = ("<CreateBucketConfiguration><LocationConstraint>" +
            f"{xml_escape(region)}</LocationConstraint>" +
            "</CreateBucketConfiguration>").encode("utf-8")
    return client.request("PUT", bucket, headers=headers, body=body)

def remove_bucket(client, bucket):
    return client.request("DELETE", bucket)

def remove_object(client, bucket, key):
    return client.request("DELETE", bucket, key)

def stat_object(client, bucket, key):
    return client.request("HEAD", bucket, key)

def get_object(client, bucket, key, sink=None):
    return client.request("GET", bucket, key, sink=sink)

def head_lines(data, count):
    if count < 0:
        raise ValidationError("line count must not be negative")
    lines = data.splitlines(keepends=True)
    return b"".join(lines[:count])

def find_keys(client, bucket, prefix="", pattern=""):
    keys = list_object_keys(client, bucket, prefix)
    if not pattern:
        return keys
    if "*" in pattern or "?" in pattern:
        return [key for key in keys if glob_match(pattern, key)
            or glob_match(pattern, key.rsplit("/", 1)[-1])]
    return [key for key in keys if pattern in key]

def render_tree(keys, prefix=""):
    root = {}
    normalized = prefix.strip("/")
    for key in sorted(keys):
        relative = key
        if normalized and key.startswith(normalized + "/"):
            relative = key[len(normalized) + 1:]
        node = root
        for part in relative.split("/"):
            if part:
                node = node.setdefault(part, {})

    lines = [normalized or "."]

    def walk(node, indent):
        names = sorted(node)
        for i, name in enumerate(names):
            last = i == len(names) - 1
            lines.append(indent + ("└── " if last else "├── ") + name)
            walk(node[name], indent + ("    " if last else "│   "))

    walk(root, "")
    return lines

def get_subresource(client, bucket, name, key=None):
    return client.request("GET", bucket, key, query=name).text

def put_subresource(client, bucket, name, body, key=None, headers=None):
    if isinstance(body, str):
        body = body.encode("utf-8")
    logger.debug("put %s on %s/%s", name, bucket, key or "")
    headers = dict(headers or {})
    headers["Content-MD5"] = content_md5(body)
    return client.request("PUT", bucket, key, query=name, headers=headers,
        body=body)

def delete_subresource(client, bucket, name):
    return client.request("DELETE", bucket, query=name)

def set_cors(client, bucket, document):
    return put_subresource(client, bucket, "cors", document)

def get_cors(client, bucket):
    return get_subresource(client, bucket, "cors")

def remove_cors(client, bucket):
    return delete_subresource(client, bucket, "cors")

def set_encryption(client, bucket, document):
    return put_subresource(client, bucket, "encryption", document)

def get_encryption(client, bucket):
    return get_subresource(client, bucket, "encryption")

def clear_encryption(client, bucket):
    return delete_subresource(client, bucket, "encryption")

def set_notification(client, bucket, document):
    return put_subresource(client, bucket, "notification", document)

def get_notification(client, bucket):
    return get_subresource(client, bucket, "notification")

def clear_notification(client, bucket):
    return put_subresource(client, bucket, "notification",
        "<NotificationConfiguration></NotificationConfiguration>")

def set_legal_hold(client, bucket, key, enabled):
    status = "ON" if enabled else "OFF"
    return put_subresource(client, bucket, "legal-hold",
        f"<LegalHold><Status>{status}</Status></LegalHold>", key=key)

def get_legal_hold(client, bucket, key):
    return get_subresource(client, bucket, "legal-hold", key=key)

def set_retention(client, bucket, key, mode, retain_until):
    mode = mode.upper()
    if mode not in RETENTION_MODES:
        raise ValidationError(f"retention mode must be one of " +
            f"{', '.join(RETENTION_MODES)}: {mode}")
    if not retain_until:
        raise ValidationError("retention requires --retain-until")
    body = (f"<Retention><Mode>{mode}</Mode>" +
        f"<RetainUntilDate>{xml_escape(retain_until)}</RetainUntilDate>" +
        "</Retention>")
    return put_subresource(client, bucket, "retention", body, key=key)

def clear_retention(client, bucket, key):
    return put_subresource(client, bucket, "retention", "<Retention/>",
        key=key, headers={"x-amz-bypass-governance-retention": "true"})

def get_retention(client, bucket, key):
    return get_subresource(client, bucket, "retention", key=key)

def ping(client):
    start = time.monotonic()
    client.request("GET")
    return (time.monotonic() - start) * 1000

def ready(client):
    client.request("GET", "minio", "health/ready")
    return True
