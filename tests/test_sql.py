import struct
import zlib

import pytest

from s4 import sql
from s4.errors import RequestError, ValidationError
from s4.transport import Response

from conftest import FakeClient

def _header(name, value):
    name = name.encode()
    value = value.encode()
    return (bytes([len(name)]) + name + bytes([7]) +
        struct.pack(">H", len(value)) + value)

def _frame(headers, payload=b""):
    header_bytes = b"".join(_header(k, v) for k, v in headers.items())
    total = 16 + len(header_bytes) + len(payload)
    prelude = struct.pack(">II", total, len(header_bytes))
    prelude += struct.pack(">I", zlib.crc32(prelude))
    message = prelude + header_bytes + payload
    return message + struct.pack(">I", zlib.crc32(message))

def _records(payload):
    return _frame({":message-type": "event", ":event-type": "Records",
        ":content-type": "application/octet-stream"}, payload)

def test_parse_options():
    assert sql.parse_options("fh=USE,fd=;") == {"fh": "USE", "fd": ";"}
    assert sql.parse_options("") == {}
    with pytest.raises(ValidationError):
        sql.parse_options("fh")

def test_build_select_request_csv():
    body = sql.build_select_request("select * from s3object s where x < 3",
        input_options={"fh": "USE"})
    assert body == (
        "<SelectObjectContentRequest>"
        "<Expression>select * from s3object s where x &lt; 3</Expression>"
        "<ExpressionType>SQL</ExpressionType>"
        "<InputSerialization>"
        "<CSV><FileHeaderInfo>USE</FileHeaderInfo></CSV>"
        "<CompressionType>NONE</CompressionType>"
        "</InputSerialization>"
        "<OutputSerialization><CSV/></OutputSerialization>"
        "</SelectObjectContentRequest>")

def test_build_select_request_json():
    body = sql.build_select_request("select * from s3object",
        input_format="json", input_options={"t": "lines"},
        compression="gzip", output_format="json")
    assert "<JSON><Type>LINES</Type></JSON>" in body
    assert "<CompressionType>GZIP</CompressionType>" in body
    assert "<OutputSerialization><JSON/></OutputSerialization>" in body

@pytest.mark.parametrize("kwargs", [
    {"input_format": "PARQUET"},
    {"output_format": "XML"},
    {"compression": "ZSTD"},
    {"input_options": {"zz": "1"}},
])
def test_build_select_request_rejects(kwargs):
    with pytest.raises(ValidationError):
        sql.build_select_request("select 1", **kwargs)

def test_decode_concatenates_records():
    data = (_records(b"a,1\n") +
        _frame({":message-type": "event", ":event-type": "Stats"}, b"<x/>") +
        _records(b"b,2\n") +
        _frame({":message-type": "event", ":event-type": "End"}))
    assert sql.decode_event_stream(data) == b"a,1\nb,2\n"

def test_decode_error_frame():
    data = _records(b"a\n") + _frame({":message-type": "error",
        ":error-code": "InvalidQuery", ":error-message": "bad sql"})
    with pytest.raises(RequestError) as exc:
        sql.decode_event_stream(data)
    assert "InvalidQuery: bad sql" in str(exc.value)

@pytest.mark.parametrize("data", [
    b"",
    b"plain,csv\n",
    b"x" * 40,
])
def test_decode_non_event_stream_returns_raw(data):
    assert sql.decode_event_stream(data) == data

def test_decode_checksum_mismatch_returns_raw():
    frame = bytearray(_records(b"payload"))
    frame[-5] ^= 0xff
    assert sql.decode_event_stream(bytes(frame)) == bytes(frame)

def test_select_object_posts_request():
    client = FakeClient([Response(200, "OK", [], _records(b"row\n"))])
    assert sql.select_object(client, "bucket", "data.csv", "<Req/>") == \
        b"row\n"
    call = client.calls[0]
    assert call.method == "POST"
    assert call.query == "select&select-type=2"
    assert call.body == b"<Req/>"
