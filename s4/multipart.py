import logging
import threading
import concurrent.futures

from .errors import InitError, ProtocolError, RequestError, S4Error
from .signer import uri_encode
from .xmlscan import first_tag_value, xml_escape, xml_unescape

logger = logging.getLogger(__name__)

MULTIPART_THRESHOLD = 16 * 1024 * 1024
PART_SIZE = 8 * 1024 * 1024

IDLE = "idle"
INITIATED = "initiated"
UPLOADING = "uploading"
COMPLETED = "completed"
ABORTED = "aborted"

def build_manifest(parts):
    body = ["<CompleteMultipartUpload>"]
    for part_number, etag in sorted(parts):
        body.append(f"<Part><PartNumber>{part_number}</PartNumber>" +
            f"<ETag>\"{xml_escape(etag)}\"</ETag></Part>")
    body.append("</CompleteMultipartUpload>")
    return "".join(body)

def read_chunks(file_path, part_size):
    with open(file_path, "rb") as f:
        part_number = 1
        while True:
            data = f.read(part_size)
            if not data:
                break
            yield part_number, data
            part_number += 1

class MultipartUpload:
    def __init__(self, client, bucket, key, part_size=PART_SIZE,
            headers=None, workers=1):
        self.client = client
        self.bucket = bucket
        self.key = key
        self.part_size = part_size
        self.headers = headers or {}
        self.workers = max(1, workers)
        self.upload_id = None
        self.parts = []
        self.state = IDLE
        self.abort_attempted = False
        self._lock = threading.Lock()

    def _upload_query(self):
        return "uploadId=" + uri_encode(self.upload_id)

    def initiate(self):
        if self.state != IDLE:
            raise ProtocolError(f"multipart upload already {self.state}")

        body = self.client.request("POST", self.bucket, self.key,
            query="uploads", headers=self.headers).text
        upload_id = first_tag_value(body, "UploadId")
        if not upload_id:
            raise InitError(
                f"initiate multipart upload returned no UploadId: {body}")

        self.upload_id = xml_unescape(upload_id.strip())
        self.state = INITIATED
        logger.debug("multipart initiated %s/%s upload_id=%s", self.bucket,
            self.key, self.upload_id)
        return self.upload_id

    def upload_part(self, part_number, data):
        if self.state not in (INITIATED, UPLOADING):
            raise ProtocolError(
                f"cannot upload part while upload is {self.state}")
        self.state = UPLOADING

        query = f"partNumber={part_number}&{self._upload_query()}"
        response = self.client.request("PUT", self.bucket, self.key,
            query=query, body=data)
        etag = response.header("ETag")
        if not etag:
            raise ProtocolError(f"part {part_number} returned no ETag")

        etag = etag.strip().strip("\"")
        with self._lock:
            self.parts.append((part_number, etag))
        logger.debug("multipart part %d uploaded (%d bytes) etag=%s",
            part_number, len(data), etag)
        return etag

    def complete(self):
        if not self.parts:
            error = ProtocolError(
                "multipart upload collected no parts; upload aborted")
            self.abort_quietly(error)
            raise error

        manifest = build_manifest(self.parts)
        response = self.client.request("POST", self.bucket, self.key,
            query=self._upload_query(), body=manifest.encode("utf-8"))

        # Complete can fail with a 200 status and an Error document.
        if "<Error>" in response.text:
            raise RequestError(response.status, response.text,
                "complete multipart upload returned an error document")

        self.state = COMPLETED
        logger.debug("multipart completed %s/%s with %d parts", self.bucket,
            self.key, len(self.parts))
        return response

    def abort(self):
        if self.upload_id is None:
            return
        self.client.request("DELETE", self.bucket, self.key,
            query=self._upload_query())
        self.state = ABORTED
        logger.debug("multipart aborted %s/%s upload_id=%s", self.bucket,
            self.key, self.upload_id)

    def abort_quietly(self, error):
        self.abort_attempted = True
        try:
            self.abort()
        except S4Error as abort_error:
            logger.warning("failed to abort multipart upload %s: %s",
                self.upload_id, abort_error)
            if error is not None:
                error.abort_error = abort_error

    def _upload_sequential(self, file_path):
        for part_number, data in read_chunks(file_path, self.part_size):
            self.upload_part(part_number, data)

    def _upload_parallel(self, file_path):
        chunks = read_chunks(file_path, self.part_size)
        first_error = None

        with concurrent.futures.ThreadPoolExecutor(
                max_workers=self.workers) as executor:
            pending = set()
            for part_number, data in chunks:
                pending.add(executor.submit(self.upload_part,
                    part_number, data))
                if len(pending) < self.workers:
                    continue

                done, pending = concurrent.futures.wait(pending,
                    return_when=concurrent.futures.FIRST_COMPLETED)
                first_error = _first_exception(done)
                if first_error is not None:
                    break

            done, _ = concurrent.futures.wait(pending)
            if first_error is None:
                first_error = _first_exception(done)
        chunks.close()

        if first_error is not None:
            raise first_error

    def upload_file(self, file_path):
        self.initiate()
        try:
            if self.workers > 1:
                self._upload_parallel(file_path)
            else:
                self._upload_sequential(file_path)
            return self.complete()
        except Exception as error:
            if not self.abort_attempted and self.state != COMPLETED:
                self.abort_quietly(error)
            raise

def _first_exception(futures):
    for future in futures:
        error = future.exception()
        if error is not None:
            return error
    return None
