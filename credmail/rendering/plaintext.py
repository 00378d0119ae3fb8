import re


HTML_TAG_PATTERN = re.compile(
    r"<(p|div|br|span|strong|em|h[1-6]|ul|ol|li|table|tr|td|th|a|img|html|body|head)\b[^>]*>",
    re.IGNORECASE,
)

_ENTITIES = {
    "&nbsp;": " ",
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&apos;": "'",
}
_ENTITY_PATTERN = re.compile("|".join(re.escape(entity) for entity in _ENTITIES))

# (pattern, replacement) applied in order
_STRIP_STEPS = [
    (re.compile(r"<!DOCTYPE[^>]*>", re.IGNORECASE), ""),
    (re.compile(r"<!--.*?-->", re.DOTALL), ""),
    (re.compile(r"<!\[CDATA\[.*?\]\]>", re.DOTALL), ""),
    (re.compile(r"<head\b[^>]*>.*?</head>", re.IGNORECASE | re.DOTALL), ""),
    (re.compile(r"<style\b[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL), ""),
    (re.compile(r"<script\b[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL), ""),
    (re.compile(r"</?(?:html|body|head)\b[^>]*>", re.IGNORECASE), ""),
    (re.compile(r"<h[1-6]\b[^>]*>(.*?)</h[1-6]>", re.IGNORECASE), r"\1\n\n"),
    (re.compile(r"<br\s*/?>", re.IGNORECASE), "\n"),
    (re.compile(r"</(?:p|div|li)>", re.IGNORECASE), "\n\n"),
    (re.compile(r"</(?:tr|th|td)>", re.IGNORECASE), "\n"),
    (re.compile(r"<[^>]+>"), ""),
]


def is_html(text: str) -> bool:
    """Check whether text contains at least one structural or formatting tag."""
    if not text:
        return False
    return HTML_TAG_PATTERN.search(text) is not None


def strip_html(html: str) -> str:
    """
    Convert an HTML body to readable plain text for channels that cannot carry markup.

    Block-level closings become blank lines, table rows and cells become single
    newlines, and the common entities are decoded.

    Args:
        html: HTML content

    Returns:
        Plain text with normalized whitespace
    """
    text = html or ""
    for pattern, replacement in _STRIP_STEPS:
        text = pattern.sub(replacement, text)

    text = _ENTITY_PATTERN.sub(lambda match: _ENTITIES[match.group(0)], text)

    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    return text.strip("\n")
