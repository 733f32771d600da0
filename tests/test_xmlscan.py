from s4.xmlscan import (extract_tag_values, first_tag_value, xml_escape,
    xml_unescape)

def test_extracts_values_in_document_order():
    body = ("<ListBucketResult><Contents><Key>a.txt</Key></Contents>"
        "<Contents><Key>b/c.txt</Key></Contents></ListBucketResult>")
    assert extract_tag_values(body, "Key") == ["a.txt", "b/c.txt"]

def test_missing_and_unterminated_tags():
    assert extract_tag_values("<a>1</a>", "b") == []
    assert extract_tag_values("<Key>a</Key><Key>b", "Key") == ["a"]
    assert first_tag_value("<a>1</a>", "b", "none") == "none"

def test_first_tag_value_returns_raw_text():
    assert first_tag_value("<UploadId>x&amp;y</UploadId>",
        "UploadId") == "x&amp;y"

def test_unescape_is_single_pass():
    assert xml_unescape("a &amp; b &lt;c&gt; &quot;d&quot; &apos;e&apos;") \
        == "a & b <c> \"d\" 'e'"
    assert xml_unescape("&amp;lt;") == "&lt;"
    assert xml_unescape("&unknown;") == "&unknown;"

def test_escape():
    assert xml_escape("a&b<c>\"'") == "a&amp;b&lt;c&gt;&quot;&apos;"
