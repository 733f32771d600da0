import os
import io
import ssl
import time
import socket
import logging
import http.client

from . import signer
from .config import TransportConfig
from .errors import (ConfigError, RequestError, TransportError,
    ValidationError)
from .xmlscan import first_tag_value

logger = logging.getLogger(__name__)

CHUNK_SIZE = 65536

class Throttle:
    """Keeps the average transfer rate at or below `rate` bytes/second."""

    def __init__(self, rate, clock=time.monotonic, sleep=time.sleep):
        self.rate = rate
        self.clock = clock
        self.sleep = sleep
        self.start = None
        self.transferred = 0

    def consume(self, size):
        if not self.rate:
            return
        if self.start is None:
            self.start = self.clock()
        self.transferred += size
        expected = self.transferred / self.rate
        elapsed = self.clock() - self.start
        if expected > elapsed:
            self.sleep(expected - elapsed)

class ThrottledReader:
    def __init__(self, file, total_size, throttle, chunk_size=CHUNK_SIZE):
        self.file = file
        self.total_size = total_size
        self.throttle = throttle
        self.chunk_size = chunk_size

    @classmethod
    def open(cls, file_path, throttle):
        return cls(open(file_path, "rb"), os.path.getsize(file_path),
            throttle)

    def read(self, size=-1):
        data = self.file.read(size if size > 0 else self.chunk_size)
        if data:
            self.throttle.consume(len(data))
        return data

    def __len__(self):
        return self.total_size

    def close(self):
        self.file.close()

class Response:
    def __init__(self, status, reason="", headers=None, body=b""):
        self.status = status
        self.reason = reason
        self.headers = list(headers or [])
        self.body = body

    @property
    def text(self):
        return self.body.decode("utf-8", errors="replace")

    def header(self, name, default=None):
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return default

    def raw_headers(self):
        lines = [f"HTTP/1.1 {self.status} {self.reason}".rstrip()]
        lines.extend(f"{key}: {value}" for key, value in self.headers)
        return "\n".join(lines)

def build_path(credentials, bucket="", key=None):
    if not credentials.path_style:
        raise ConfigError(
            "only --path-style aliases are supported in this build")

    path = credentials.endpoint.base_path
    if bucket:
        path += "/" + signer.uri_encode_path(bucket)
    if key is not None:
        path += "/" + signer.uri_encode_path(key)
    return path or "/"

class ResolvedHTTPConnection(http.client.HTTPConnection):
    """Connects to `address` while `host` still names the endpoint."""

    def __init__(self, host, address, **kwargs):
        super().__init__(host, **kwargs)
        self.address = address

    def connect(self):
        self.sock = socket.create_connection((self.address, self.port),
            self.timeout, self.source_address)

class ResolvedHTTPSConnection(http.client.HTTPSConnection):
    def __init__(self, host, address, context, **kwargs):
        super().__init__(host, context=context, **kwargs)
        self.address = address
        self.ssl_context = context

    def connect(self):
        sock = socket.create_connection((self.address, self.port),
            self.timeout, self.source_address)
        try:
            self.sock = self.ssl_context.wrap_socket(sock,
                server_hostname=self.host)
        except BaseException:
            sock.close()
            raise

def _open_connection(endpoint, config):
    address = config.resolve_address(endpoint.hostname, endpoint.port)
    if address:
        logger.debug("resolve: %s:%s -> %s", endpoint.hostname,
            endpoint.port, address)

    if endpoint.scheme == "https":
        context = ssl.create_default_context()
        if not config.verify_tls:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        if address:
            return ResolvedHTTPSConnection(endpoint.host, address, context,
                timeout=config.timeout)
        return http.client.HTTPSConnection(endpoint.host,
            timeout=config.timeout, context=context)

    if address:
        return ResolvedHTTPConnection(endpoint.host, address,
            timeout=config.timeout)
    return http.client.HTTPConnection(endpoint.host, timeout=config.timeout)

def _payload_hash(body):
    if body is None:
        return signer.EMPTY_SHA256
    if isinstance(body, (bytes, bytearray)):
        return signer.sha256_hexdigest(body)

    file_path = os.fspath(body)
    if not os.path.isfile(file_path):
        raise ValidationError(f"source file not found: {file_path}")
    try:
        return signer.sha256_hexdigest_file(file_path)
    except OSError as e:
        raise ValidationError(f"cannot read {file_path}: {e}") from e

def _open_body(body, throttle):
    if body is None:
        return None
    if isinstance(body, (bytes, bytearray)):
        return ThrottledReader(io.BytesIO(body), len(body), throttle)

    file_path = os.fspath(body)
    try:
        return ThrottledReader.open(file_path, throttle)
    except OSError as e:
        raise ValidationError(f"cannot read {file_path}: {e}") from e

def _diagnostic(method, url, reason, body):
    code = first_tag_value(body, "Code")
    message = first_tag_value(body, "Message")
    diagnostic = f"{method} {url}: {reason}"
    if code:
        diagnostic += f" [{code}]"
    if message:
        diagnostic += f" {message}"
    return diagnostic

def _read_body(response, throttle):
    chunks = []
    while True:
        chunk = response.read(CHUNK_SIZE)
        if not chunk:
            break
        throttle.consume(len(chunk))
        chunks.append(chunk)
    return b"".join(chunks)

def _stream_to_file(response, sink, throttle):
    parent = os.path.dirname(os.path.abspath(sink))
    try:
        os.makedirs(parent, exist_ok=True)
        f = open(sink, "wb")
    except OSError as e:
        raise ValidationError(f"cannot write {sink}: {e}") from e

    try:
        with f:
            while True:
                chunk = response.read(CHUNK_SIZE)
                if not chunk:
                    break
                throttle.consume(len(chunk))
                f.write(chunk)
    except BaseException:
        try:
            os.remove(sink)
        except OSError:
            pass
        raise

def execute(config, credentials, method, bucket="", key=None, query="",
        headers=None, body=None, sink=None):
    config = config or TransportConfig()
    endpoint = credentials.endpoint
    path = build_path(credentials, bucket, key)
    target = f"{path}?{query}" if query else path
    url = endpoint.url(target)

    upload_throttle = Throttle(config.upload_limit)
    download_throttle = Throttle(config.download_limit)

    payload_hash = _payload_hash(body)
    signed = signer.sign_v4(method, path, query, endpoint.host,
        credentials.region, credentials.access_key, credentials.secret_key,
        payload_hash)

    request_headers = {
        "Host": endpoint.host,
        "x-amz-date": signed.amz_date,
        "x-amz-content-sha256": payload_hash,
        "Authorization": signed.authorization,
    }
    for name, value in config.extra_headers:
        request_headers[name] = value
    for name, value in (headers or {}).items():
        request_headers[name] = value

    logger.debug("request: %s %s", method, url)

    reader = _open_body(body, upload_throttle)
    try:
        if reader is not None:
            request_headers["Content-Length"] = str(len(reader))

        conn = _open_connection(endpoint, config)
        try:
            conn.request(method, target, body=reader,
                headers=request_headers)
            response = conn.getresponse()
            status = response.status
            reason = response.reason
            response_headers = response.getheaders()

            if method == "HEAD":
                data = b""
            elif status < 200 or status >= 300:
                data = response.read()
            elif sink is not None:
                _stream_to_file(response, sink, download_throttle)
                data = b""
            else:
                data = _read_body(response, download_throttle)
        except (OSError, http.client.HTTPException) as e:
            raise TransportError(
                f"request execution failed: {method} {url}: {e}") from e
        finally:
            conn.close()
    finally:
        if reader is not None:
            reader.close()

    logger.debug("response: %s %s", status, reason)

    if status < 200 or status >= 300:
        text = data.decode("utf-8", errors="replace")
        raise RequestError(status, text,
            _diagnostic(method, url, reason, text))

    return Response(status, reason, response_headers, data)

class Client:
    def __init__(self, credentials, transport_config=None):
        self.credentials = credentials
        self.transport_config = transport_config or TransportConfig()

    def request(self, method, bucket="", key=None, query="", headers=None,
            body=None, sink=None):
        return execute(self.transport_config, self.credentials, method,
            bucket, key, query, headers, body, sink)
