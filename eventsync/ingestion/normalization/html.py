"""
HTML cleanup for event descriptions.

Adapters copy description markup straight out of CMS pages. The markup is
full of inline styling, empty paragraphs and hand-drawn separators, none of
which survive the rendering in the app. Bare URLs in the text are turned
into links.
"""

import re
from typing import Optional

from bs4 import BeautifulSoup, Comment, NavigableString

STRIPPED_ATTRIBUTES = ("style", "class", "align", "id", "dir")

# "-----", "=====", "~~~~", "####" and friends drawn as section breaks
SEPARATOR_RUN = re.compile(r"[—\-=–‒⸻⸺―⁓~#]{3,}")
EMPTY_PARAGRAPH = re.compile(r"<p>\s*(?:<br\s*/?>|&nbsp;|\xa0)?\s*</p>", re.IGNORECASE)
BR_RUN = re.compile(r"<br\s*/?>(?:\s*<br\s*/?>){2,}", re.IGNORECASE)
URL = re.compile(r"https?://[^\s<>\"]+", re.IGNORECASE)


def linkify(soup: BeautifulSoup) -> None:
    """Wrap bare URLs in text nodes outside of links in `<a target="_blank">` tags."""
    for text_node in soup.find_all(string=URL):
        if isinstance(text_node, Comment) or text_node.find_parent(["a", "script", "style"]):
            continue

        pieces = []
        position = 0
        for match in URL.finditer(text_node):
            if match.start() > position:
                pieces.append(NavigableString(text_node[position : match.start()]))
            anchor = soup.new_tag("a", href=match.group(0), target="_blank")
            anchor.string = match.group(0)
            pieces.append(anchor)
            position = match.end()
        if position < len(text_node):
            pieces.append(NavigableString(text_node[position:]))
        text_node.replace_with(*pieces)


def clean_prose_html(html: Optional[str]) -> Optional[str]:
    """
    Sanitize a prose HTML fragment.

    Args:
        html: Description markup as produced by an adapter

    Returns:
        The cleaned fragment, or the input unchanged when it is empty
    """
    if not html:
        return html

    soup = BeautifulSoup(html, "html.parser")

    for tag in soup.find_all(True):
        for attr in STRIPPED_ATTRIBUTES:
            if attr in tag.attrs:
                del tag.attrs[attr]

    for paragraph in soup.find_all("p"):
        text = paragraph.get_text().replace("\xa0", "").strip()
        if not text and not paragraph.find(["img", "hr", "br"]):
            paragraph.decompose()

    for text_node in soup.find_all(string=SEPARATOR_RUN):
        if text_node.strip() and not SEPARATOR_RUN.sub("", text_node).strip():
            text_node.replace_with(soup.new_tag("hr"))

    linkify(soup)

    cleaned = str(soup)
    cleaned = EMPTY_PARAGRAPH.sub("", cleaned)
    cleaned = BR_RUN.sub("<br/><br/>", cleaned)
    return cleaned.strip()
