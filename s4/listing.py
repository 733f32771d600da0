import logging
import collections

from .signer import uri_encode
from .xmlscan import extract_tag_values, first_tag_value, xml_unescape

logger = logging.getLogger(__name__)

ObjectInfo = collections.namedtuple("ObjectInfo",
    ["key", "size", "modified", "is_dir"])

def list_pages(client, bucket, prefix="", delimiter=None):
    """Yield the raw body of every ListObjectsV2 page under `prefix`."""
    continuation_token = None
    page = 0

    while True:
        query = "list-type=2"
        if prefix:
            query += "&prefix=" + uri_encode(prefix)
        if delimiter:
            query += "&delimiter=" + uri_encode(delimiter)
        if continuation_token:
            query += "&continuation-token=" + uri_encode(continuation_token)

        body = client.request("GET", bucket, query=query).text
        page += 1
        logger.debug("listing page %d of %s/%s", page, bucket, prefix)
        yield body

        is_truncated = first_tag_value(body, "IsTruncated", "false")
        if is_truncated.strip() != "true":
            break

        continuation_token = first_tag_value(body, "NextContinuationToken")
        if not continuation_token:
            # Truncated without a token: treat as the end of the listing.
            break
        continuation_token = xml_unescape(continuation_token)

def list_object_keys(client, bucket, prefix=""):
    keys = []
    for body in list_pages(client, bucket, prefix):
        keys.extend(xml_unescape(key)
            for key in extract_tag_values(body, "Key"))
    return keys

def list_objects(client, bucket, prefix="", delimiter=None):
    items = []
    for body in list_pages(client, bucket, prefix, delimiter):
        for common_prefix in extract_tag_values(body, "CommonPrefixes"):
            name = first_tag_value(common_prefix, "Prefix")
            if name is not None:
                items.append(ObjectInfo(xml_unescape(name), None, "", True))

        for content in extract_tag_values(body, "Contents"):
            key = first_tag_value(content, "Key")
            if key is None:
                continue
            size = first_tag_value(content, "Size", "0")
            modified = first_tag_value(content, "LastModified", "")
            items.append(ObjectInfo(xml_unescape(key), int(size or 0),
                modified, False))
    return items

def list_buckets(client):
    body = client.request("GET").text
    names = []
    for bucket in extract_tag_values(body, "Bucket"):
        name = first_tag_value(bucket, "Name")
        if name is not None:
            names.append(xml_unescape(name))
    return names
