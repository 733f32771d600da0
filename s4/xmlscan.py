import re

_entities = {
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "quot": "\"",
    "apos": "'",
}
_entity_re = re.compile(r"&(amp|lt|gt|quot|apos);")

def extract_tag_values(text, tag):
    open_tag = f"<{tag}>"
    close_tag = f"</{tag}>"

    values = []
    pos = 0
    while True:
        start = text.find(open_tag, pos)
        if start < 0:
            break
        start += len(open_tag)
        end = text.find(close_tag, start)
        if end < 0:
            break
        values.append(text[start:end])
        pos = end + len(close_tag)

    return values

def first_tag_value(text, tag, default=None):
    values = extract_tag_values(text, tag)
    if values:
        return values[0]
    return default

def xml_unescape(value):
    return _entity_re.sub(lambda m: _entities[m.group(1)], value)

def xml_escape(value):
    return (value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace("\"", "&quot;")
        .replace("'", "&apos;"))
