"""Convert Better BibTeX HTML bibliographies to Markdown.

Better BibTeX renders citations through citeproc, which emits a small,
predictable subset of HTML::

    <div class="csl-bib-body">
      <div class="csl-entry">Doe, J. (2020). <i>Title</i>. ...</div>
    </div>

Each ``csl-entry`` becomes one Markdown paragraph.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup, NavigableString, Tag

from zotlink.errors import EmptyBibliography

_WS = re.compile(r"\s+")

# Kept verbatim: Markdown has no portable syntax for these.
_PASSTHROUGH = {"sup", "sub"}

# Block wrappers inside an entry, e.g. the csl-left-margin label of numeric styles.
_BLOCKS = {"div", "p"}


def _inline(node) -> str:
    if isinstance(node, NavigableString):
        return _WS.sub(" ", str(node))
    if not isinstance(node, Tag):
        return ""

    inner = "".join(_inline(child) for child in node.children)
    name = node.name
    if name in ("i", "em"):
        return f"*{inner.strip()}*" if inner.strip() else inner
    if name in ("b", "strong"):
        return f"**{inner.strip()}**" if inner.strip() else inner
    if name == "a" and node.get("href"):
        return f"[{inner.strip()}]({node['href']})"
    if name in _PASSTHROUGH:
        return f"<{name}>{inner}</{name}>"
    if name == "br":
        return "\n"
    if name in _BLOCKS:
        return f" {inner.strip()} "
    if name == "span" and "font-variant:small-caps" in (node.get("style") or "").replace(" ", ""):
        return inner.upper()
    return inner


def html_to_markdown(html: str) -> str:
    """Render a citeproc HTML bibliography as Markdown.

    Raises:
        EmptyBibliography: *html* has no text at all.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    if not soup.get_text().strip():
        raise EmptyBibliography()

    entries = soup.find_all(class_="csl-entry") or [soup]
    paragraphs = []
    for entry in entries:
        text = re.sub(r" {2,}", " ", _inline(entry)).strip()
        text = re.sub(r" *\n *", "\n", text)
        if text:
            paragraphs.append(text)
    return "\n\n".join(paragraphs)
