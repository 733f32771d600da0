import collections
import datetime
import hashlib
import hmac
import re
import urllib.parse

from .errors import SigningError

ALGORITHM = "AWS4-HMAC-SHA256"
SERVICE = "s3"
SIGNED_HEADERS = "host;x-amz-content-sha256;x-amz-date"
EMPTY_SHA256 = hashlib.sha256(b"").hexdigest()

_hex_digest = re.compile(r"^[0-9a-f]{64}$")

SignedRequest = collections.namedtuple("SignedRequest",
    ["canonical_uri", "canonical_query", "amz_date", "authorization"])

def get_utc_now():
    return datetime.datetime.now(datetime.timezone.utc)

def uri_encode_path(value):
    return urllib.parse.quote(value, safe="/")

def uri_encode(value):
    return urllib.parse.quote(value, safe="")

def sha256_hexdigest(data):
    return hashlib.sha256(data).hexdigest()

def sha256_hexdigest_file(file_path):
    h = hashlib.sha256()
    with open(file_path, "rb") as f:
        while chunk := f.read(65536):
            h.update(chunk)
    return h.hexdigest()

def canonical_query_string(query):
    """Sort raw `name=value` pairs by name, then value.

    Values are expected to be percent-encoded by the caller already. A bare
    subresource name such as `uploads` is rendered as `uploads=`.
    """
    if not query:
        return ""
    pairs = []
    for param in query.split("&"):
        if not param:
            continue
        name, _, value = param.partition("=")
        pairs.append((name, value))
    pairs.sort()
    return "&".join(f"{name}={value}" for name, value in pairs)

def sign(key, msg):
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()

def get_signature_key(secret_key, date_stamp, region):
    k_date = sign(("AWS4" + secret_key).encode("utf-8"), date_stamp)
    k_region = sign(k_date, region)
    k_service = sign(k_region, SERVICE)
    return sign(k_service, "aws4_request")

def sign_v4(method, uri_path, query, host, region, access_key, secret_key,
        payload_hash, now=None):
    if not method or not host or not region:
        raise SigningError("method, host and region are required")
    if not access_key or not secret_key:
        raise SigningError("access key and secret key are required")
    if not payload_hash or not _hex_digest.match(payload_hash):
        raise SigningError(f"invalid payload hash: {payload_hash!r}")

    now = now or get_utc_now()
    amz_date = now.strftime("%Y%m%dT%H%M%SZ")
    date_stamp = amz_date[:8]

    canonical_uri = uri_path or "/"
    canonical_query = canonical_query_string(query)
    canonical_headers = (
        f"host:{host}\n"
        f"x-amz-content-sha256:{payload_hash}\n"
        f"x-amz-date:{amz_date}\n"
    )

    canonical_request = (
        f"{method}\n"
        f"{canonical_uri}\n"
        f"{canonical_query}\n"
        f"{canonical_headers}\n"
        f"{SIGNED_HEADERS}\n"
        f"{payload_hash}"
    )

    credential_scope = f"{date_stamp}/{region}/{SERVICE}/aws4_request"
    string_to_sign = (
        f"{ALGORITHM}\n"
        f"{amz_date}\n"
        f"{credential_scope}\n"
        f"{hashlib.sha256(canonical_request.encode()).hexdigest()}"
    )

    signing_key = get_signature_key(secret_key, date_stamp, region)
    signature = hmac.new(signing_key, string_to_sign.encode("utf-8"),
        hashlib.sha256).hexdigest()

    authorization = (
        f"{ALGORITHM} Credential={access_key}/{credential_scope}, "
        f"SignedHeaders={SIGNED_HEADERS}, Signature={signature}"
    )

    return SignedRequest(canonical_uri, canonical_query, amz_date,
        authorization)
