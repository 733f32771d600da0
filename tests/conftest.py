import datetime
import email.utils
import collections
import urllib.parse

import pytest

from s4.config import Credentials, Endpoint
from s4.errors import RequestError
from s4.transport import Response
from s4.xmlscan import extract_tag_values, xml_escape

Call = collections.namedtuple("Call",
    ["method", "bucket", "key", "query", "headers", "body", "sink"])

def _body_bytes(body):
    if body is None:
        return None
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    with open(body, "rb") as f:
        return f.read()

def _deliver(response, sink):
    if sink is None:
        return response
    with open(sink, "wb") as f:
        f.write(response.body)
    return Response(response.status, response.reason, response.headers)

class FakeClient:
    """Records requests and answers them from a script or a handler."""

    def __init__(self, responses=None, handler=None):
        self.responses = list(responses or [])
        self.handler = handler
        self.calls = []
        self.credentials = Credentials(Endpoint("http", "s3.test"),
            "AKIDEXAMPLE", "secret")

    def request(self, method, bucket="", key=None, query="", headers=None,
            body=None, sink=None):
        call = Call(method, bucket, key, query, dict(headers or {}),
            _body_bytes(body), sink)
        self.calls.append(call)
        if self.handler is not None:
            response = self.handler(call)
        else:
            response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return _deliver(response, sink)

StoredObject = collections.namedtuple("StoredObject",
    ["data", "content_type", "modified"])

class FakeS3:
    """In-memory path-style object store speaking just enough S3."""

    def __init__(self, page_size=1000):
        self.page_size = page_size
        self.buckets = collections.defaultdict(dict)
        self.uploads = {}
        self.calls = []
        self.fail = None
        self.credentials = Credentials(Endpoint("http", "s3.test"),
            "AKIDEXAMPLE", "secret")

    def put(self, bucket, key, data, modified=None,
            content_type="application/octet-stream"):
        modified = modified or datetime.datetime.now(datetime.timezone.utc)
        self.buckets[bucket][key] = StoredObject(data, content_type,
            modified)

    def keys(self, bucket):
        return sorted(self.buckets[bucket])

    def _listing(self, bucket, params):
        prefix = params.get("prefix", "")
        start = int(params.get("continuation-token", "0"))
        keys = [k for k in self.keys(bucket) if k.startswith(prefix)]
        page = keys[start:start + self.page_size]
        truncated = start + self.page_size < len(keys)

        body = ["<ListBucketResult>"]
        for key in page:
            obj = self.buckets[bucket][key]
            body.append(f"<Contents><Key>{xml_escape(key)}</Key>" +
                f"<Size>{len(obj.data)}</Size>" +
                "<LastModified>" +
                obj.modified.strftime("%Y-%m-%dT%H:%M:%S.000Z") +
                "</LastModified></Contents>")
        body.append(f"<IsTruncated>{str(truncated).lower()}</IsTruncated>")
        if truncated:
            body.append("<NextContinuationToken>" +
                f"{start + self.page_size}</NextContinuationToken>")
        body.append("</ListBucketResult>")
        return Response(200, "OK", [], "".join(body).encode())

    def _missing(self):
        return RequestError(404, "<Error><Code>NoSuchKey</Code></Error>")

    def request(self, method, bucket="", key=None, query="", headers=None,
            body=None, sink=None):
        headers = dict(headers or {})
        call = Call(method, bucket, key, query, headers, _body_bytes(body),
            sink)
        self.calls.append(call)
        if self.fail is not None:
            error = self.fail(call)
            if error is not None:
                raise error

        params = dict(urllib.parse.parse_qsl(query, keep_blank_values=True))
        objects = self.buckets[bucket]

        if method == "GET" and key is None and "list-type" in params:
            return self._listing(bucket, params)

        if method == "HEAD":
            if key not in objects:
                raise self._missing()
            obj = objects[key]
            return Response(200, "OK", [
                ("Content-Length", str(len(obj.data))),
                ("Content-Type", obj.content_type),
                ("Last-Modified",
                    email.utils.format_datetime(obj.modified, usegmt=True)),
            ])

        if method == "GET":
            if key not in objects:
                raise self._missing()
            obj = objects[key]
            response = Response(200, "OK",
                [("Content-Type", obj.content_type)], obj.data)
            return _deliver(response, sink)

        if method == "POST" and "uploads" in params:
            upload_id = f"upload-{len(self.uploads) + 1}"
            self.uploads[upload_id] = {"key": key, "parts": {},
                "content_type": headers.get("Content-Type")}
            body = ("<InitiateMultipartUploadResult><UploadId>" +
                f"{upload_id}</UploadId></InitiateMultipartUploadResult>")
            return Response(200, "OK", [], body.encode())

        if method == "PUT" and "partNumber" in params:
            upload = self.uploads[params["uploadId"]]
            number = int(params["partNumber"])
            upload["parts"][number] = call.body
            return Response(200, "OK", [("ETag", f"\"etag-{number}\"")])

        if method == "POST" and "uploadId" in params:
            upload = self.uploads.pop(params["uploadId"])
            manifest = call.body.decode()
            numbers = [int(n) for n in
                extract_tag_values(manifest, "PartNumber")]
            data = b"".join(upload["parts"][n] for n in numbers)
            self.put(bucket, key, data, content_type=upload["content_type"]
                or "application/octet-stream")
            return Response(200, "OK", [],
                b"<CompleteMultipartUploadResult/>")

        if method == "DELETE" and "uploadId" in params:
            self.uploads.pop(params["uploadId"], None)
            return Response(204, "No Content")

        if method == "PUT" and key is not None:
            copy_source = headers.get("x-amz-copy-source")
            if copy_source:
                _, src_bucket, src_key = copy_source.split("/", 2)
                src = self.buckets[urllib.parse.unquote(src_bucket)].get(
                    urllib.parse.unquote(src_key))
                if src is None:
                    raise self._missing()
                self.put(bucket, key, src.data, content_type=src.content_type)
            else:
                self.put(bucket, key, call.body or b"",
                    content_type=headers.get("Content-Type",
                        "application/octet-stream"))
            return Response(200, "OK", [("ETag", "\"etag\"")])

        if method == "DELETE" and key is not None:
            objects.pop(key, None)
            return Response(204, "No Content")

        return Response(200, "OK")

@pytest.fixture
def fake_s3():
    return FakeS3()

@pytest.fixture
def tmp_file(tmp_path):
    def make(name, data):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return str(path)
    return make
