import urllib.parse

from s4.listing import (ObjectInfo, list_buckets, list_object_keys,
    list_objects, list_pages)
from s4.transport import Response

from conftest import FakeClient

def _page(keys, truncated, token=None):
    body = "".join(f"<Contents><Key>{k}</Key><Size>1</Size></Contents>"
        for k in keys)
    body += f"<IsTruncated>{'true' if truncated else 'false'}</IsTruncated>"
    if token:
        body += f"<NextContinuationToken>{token}</NextContinuationToken>"
    body = f"<ListBucketResult>{body}</ListBucketResult>"
    return Response(200, "OK", [], body.encode())

def test_follows_continuation_tokens(fake_s3):
    fake_s3.page_size = 2
    for name in ("a", "b", "c", "d", "e"):
        fake_s3.put("bucket", f"dir/{name}", b"x")
    fake_s3.put("bucket", "other", b"x")

    keys = list_object_keys(fake_s3, "bucket", "dir/")

    assert keys == ["dir/a", "dir/b", "dir/c", "dir/d", "dir/e"]
    assert len(fake_s3.calls) == 3
    queries = [dict(urllib.parse.parse_qsl(c.query)) for c in fake_s3.calls]
    assert all(q["list-type"] == "2" and q["prefix"] == "dir/"
        for q in queries)
    assert "continuation-token" not in queries[0]
    assert queries[1]["continuation-token"] == "2"
    assert queries[2]["continuation-token"] == "4"

def test_truncated_without_token_ends_listing():
    client = FakeClient([_page(["a", "b"], True)])
    assert list_object_keys(client, "bucket") == ["a", "b"]
    assert len(client.calls) == 1

def test_continuation_token_is_unescaped_then_encoded():
    client = FakeClient([
        _page(["a"], True, "t+1&amp;2"),
        _page(["b"], False),
    ])
    assert list_object_keys(client, "bucket") == ["a", "b"]
    assert client.calls[1].query == \
        "list-type=2&continuation-token=t%2B1%262"

def test_keys_are_unescaped(fake_s3):
    fake_s3.put("bucket", "a&b <c>.txt", b"x")
    assert list_object_keys(fake_s3, "bucket") == ["a&b <c>.txt"]

def test_list_pages_yields_raw_bodies():
    client = FakeClient([_page(["a"], True, "n"), _page(["b"], False)])
    bodies = list(list_pages(client, "bucket", "p", delimiter="/"))
    assert len(bodies) == 2
    assert client.calls[0].query == "list-type=2&prefix=p&delimiter=%2F"

def test_list_objects_with_common_prefixes():
    body = ("<ListBucketResult>"
        "<CommonPrefixes><Prefix>photos/</Prefix></CommonPrefixes>"
        "<Contents><Key>readme.txt</Key><Size>42</Size>"
        "<LastModified>2024-05-01T12:00:00.000Z</LastModified></Contents>"
        "<IsTruncated>false</IsTruncated></ListBucketResult>")
    client = FakeClient([Response(200, "OK", [], body.encode())])

    items = list_objects(client, "bucket", delimiter="/")

    assert items == [
        ObjectInfo("photos/", None, "", True),
        ObjectInfo("readme.txt", 42, "2024-05-01T12:00:00.000Z", False),
    ]

def test_list_buckets():
    body = ("<ListAllMyBucketsResult><Buckets>"
        "<Bucket><Name>alpha</Name></Bucket>"
        "<Bucket><Name>beta</Name></Bucket>"
        "</Buckets></ListAllMyBucketsResult>")
    client = FakeClient([Response(200, "OK", [], body.encode())])
    assert list_buckets(client) == ["alpha", "beta"]
    assert client.calls[0].method == "GET"
    assert client.calls[0].bucket == ""
