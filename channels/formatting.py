"""Default rich-text sanitizer: model output to Discord-safe markdown."""

import re
from html.parser import HTMLParser

# HTML tags kept (rendered as markdown); every other tag is dropped and only
# its inner text survives.
_ALLOWED_TAGS = ("b", "strong", "code", "a", "blockquote")

_DISPLAY_MATH_RE = re.compile(r"\\\[(.*?)\\\]", re.DOTALL)
_INLINE_MATH_RE = re.compile(r"\\\((.*?)\\\)", re.DOTALL)


def _convert_latex(text: str) -> str:
    text = _DISPLAY_MATH_RE.sub(lambda m: "```\n" + m.group(1).strip() + "\n```", text)
    return _INLINE_MATH_RE.sub(lambda m: "`" + m.group(1).strip() + "`", text)


def _render(tag: str, attrs: dict, text: str) -> str:
    if not text:
        return ""
    if tag in ("b", "strong"):
        return f"**{text}**"
    if tag == "code":
        return f"`{text}`"
    if tag == "a":
        href = attrs.get("href")
        return f"[{text}]({href})" if href else text
    # blockquote
    return "\n".join("> " + line for line in text.strip("\n").split("\n"))


class _MarkdownFilter(HTMLParser):
    """Rebuilds the text with allowed tags as markdown.

    Unclosed allowed tags are closed at the end of input and stray end tags are
    dropped, so markers always come in pairs.
    """

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self._stack: list[tuple[str, dict, list[str]]] = [("", {}, [])]

    def handle_starttag(self, tag, attrs):
        if tag in _ALLOWED_TAGS:
            self._stack.append((tag, dict(attrs), []))

    def handle_endtag(self, tag):
        if tag not in _ALLOWED_TAGS or all(frame[0] != tag for frame in self._stack[1:]):
            return
        while self._close_top() != tag:
            pass

    def handle_data(self, data):
        self._stack[-1][2].append(data)

    def _close_top(self) -> str:
        tag, attrs, parts = self._stack.pop()
        self._stack[-1][2].append(_render(tag, attrs, "".join(parts)))
        return tag

    def result(self) -> str:
        self.close()
        while len(self._stack) > 1:
            self._close_top()
        return "".join(self._stack[0][2])


def _filter_tags(text: str) -> str:
    parser = _MarkdownFilter()
    parser.feed(text)
    return parser.result()


def sanitize_markdown(text: str) -> str:
    return _filter_tags(_convert_latex(text))
