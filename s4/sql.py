import struct
import zlib
import logging

from .errors import RequestError, ValidationError
from .xmlscan import xml_escape

logger = logging.getLogger(__name__)

SELECT_QUERY = "select&select-type=2"

csv_input_fields = {
    "fh": "FileHeaderInfo",
    "rd": "RecordDelimiter",
    "fd": "FieldDelimiter",
    "qc": "QuoteCharacter",
    "qec": "QuoteEscapeCharacter",
    "cc": "Comments",
}
json_input_fields = {
    "t": "Type",
}
compression_types = ("NONE", "GZIP", "BZIP2")

# Value sizes for the fixed-width event-stream header types.
_header_sizes = {0: 0, 1: 0, 2: 1, 3: 2, 4: 4, 5: 8, 8: 8, 9: 16}

class MalformedFrame(Exception):
    pass

def parse_options(value):
    """Parse `fh=USE,fd=;` style serialization options."""
    options = {}
    if not value:
        return options
    for item in value.split(","):
        if not item:
            continue
        name, sep, option = item.partition("=")
        if not sep:
            raise ValidationError(f"invalid serialization option: '{item}'")
        options[name.strip().lower()] = option
    return options

def _serialization(format_name, options, fields):
    children = []
    for name, option in options.items():
        tag = fields.get(name)
        if tag is None:
            raise ValidationError(
                f"unknown {format_name} serialization option: '{name}'")
        if format_name == "JSON" and tag == "Type":
            option = option.upper()
        children.append(f"<{tag}>{xml_escape(option)}</{tag}>")
    return f"<{format_name}>{''.join(children)}</{format_name}>"

def build_select_request(expression, input_format="CSV", input_options=None,
        compression="NONE", output_format="CSV"):
    input_format = input_format.upper()
    output_format = output_format.upper()
    compression = compression.upper()

    if input_format == "CSV":
        fields = csv_input_fields
    elif input_format == "JSON":
        fields = json_input_fields
    else:
        raise ValidationError(f"unsupported input format: {input_format}")
    if output_format not in ("CSV", "JSON"):
        raise ValidationError(f"unsupported output format: {output_format}")
    if compression not in compression_types:
        raise ValidationError(f"unsupported compression: {compression}")

    input_serialization = _serialization(input_format,
        input_options or {}, fields)

    return (
        "<SelectObjectContentRequest>"
        f"<Expression>{xml_escape(expression)}</Expression>"
        "<ExpressionType>SQL</ExpressionType>"
        "<InputSerialization>"
        f"{input_serialization}"
        f"<CompressionType>{compression}</CompressionType>"
        "</InputSerialization>"
        "<OutputSerialization>"
        f"<{output_format}/>"
        "</OutputSerialization>"
        "</SelectObjectContentRequest>"
    )

def _parse_headers(data):
    headers = {}
    pos = 0
    while pos < len(data):
        name_len = data[pos]
        pos += 1
        name = data[pos:pos + name_len].decode("utf-8")
        pos += name_len
        if pos >= len(data):
            raise MalformedFrame("truncated header")
        value_type = data[pos]
        pos += 1

        if value_type in (6, 7):
            if pos + 2 > len(data):
                raise MalformedFrame("truncated header value length")
            (value_len,) = struct.unpack(">H", data[pos:pos + 2])
            pos += 2
            value = data[pos:pos + value_len]
            if value_type == 7:
                value = value.decode("utf-8")
            pos += value_len
        elif value_type in _header_sizes:
            size = _header_sizes[value_type]
            value = data[pos:pos + size]
            pos += size
        else:
            raise MalformedFrame(f"unknown header type {value_type}")

        if pos > len(data):
            raise MalformedFrame("truncated header value")
        headers[name] = value
    return headers

def iter_frames(data):
    pos = 0
    while pos < len(data):
        if len(data) - pos < 16:
            raise MalformedFrame("truncated prelude")
        total_len, headers_len, prelude_crc = struct.unpack(">III",
            data[pos:pos + 12])
        if total_len < 16 + headers_len or pos + total_len > len(data):
            raise MalformedFrame("invalid frame length")
        if zlib.crc32(data[pos:pos + 8]) != prelude_crc:
            raise MalformedFrame("prelude checksum mismatch")

        frame = data[pos:pos + total_len]
        (message_crc,) = struct.unpack(">I", frame[-4:])
        if zlib.crc32(frame[:-4]) != message_crc:
            raise MalformedFrame("message checksum mismatch")

        headers = _parse_headers(frame[12:12 + headers_len])
        payload = frame[12 + headers_len:-4]
        yield headers, payload
        pos += total_len

def decode_event_stream(data):
    """Return the concatenated `Records` payloads of an event stream.

    Empty or malformed framing yields the raw bytes unchanged.
    """
    records = []
    frames = 0
    try:
        for headers, payload in iter_frames(data):
            frames += 1
            if headers.get(":message-type") == "error":
                code = headers.get(":error-code", "")
                message = headers.get(":error-message", "")
                raise RequestError(200, f"{code}: {message}",
                    "select event stream reported an error")
            if headers.get(":event-type") == "Records":
                records.append(payload)
    except (MalformedFrame, UnicodeDecodeError) as e:
        logger.debug("select response is not an event stream: %s", e)
        return data

    if not frames:
        return data
    return b"".join(records)

def select_object(client, bucket, key, request_body):
    response = client.request("POST", bucket, key, query=SELECT_QUERY,
        body=request_body.encode("utf-8"))
    return decode_event_stream(response.body)
