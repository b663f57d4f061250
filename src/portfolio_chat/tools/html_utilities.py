import re
from html import unescape

from bs4 import BeautifulSoup, NavigableString

_INVISIBLE_TAGS = ["script", "style", "head", "noscript", "svg", "template", "iframe"]
_BLOCK_TAGS = ["p", "div", "section", "article", "header", "footer", "tr",
               "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "pre"]


def page_title(html: str) -> str:
    soup = BeautifulSoup(html, "lxml")
    title_tag = soup.find("title")
    return title_tag.get_text(strip=True) if title_tag else ""


def html_to_text(html: str, *, keep_links: bool = True) -> str:
    """Render a portfolio page as plain text the model can quote from.

    Navigation chrome is kept but scripts, styles and embedded media are
    dropped. Headings become markdown-style ``#`` lines so the page outline
    survives the conversion.
    """
    soup = BeautifulSoup(html, "lxml")

    for tag in soup.find_all(_INVISIBLE_TAGS):
        tag.decompose()

    for br in soup.find_all("br"):
        br.replace_with("\n")

    for level in range(1, 7):
        for heading in soup.find_all(f"h{level}"):
            heading.insert(0, NavigableString("#" * level + " "))

    for tag in soup.find_all(_BLOCK_TAGS):
        tag.insert(0, NavigableString("\n"))
        tag.append(NavigableString("\n"))

    if keep_links:
        for a in soup.find_all("a", href=True):
            href = a["href"]
            label = a.get_text(strip=True)
            if href.startswith(("#", "javascript:")) or href == label:
                continue
            a.replace_with(f"{label} ({href})" if label else href)

    for li in soup.find_all("li"):
        li.insert(0, NavigableString("\n- "))

    for cell in soup.find_all(["td", "th"]):
        cell.append(NavigableString(" | "))

    root = soup.find("body") or soup
    text = unescape(root.get_text())

    text = re.sub(r"[ \t\r\f\v]+\n", "\n", text)
    text = re.sub(r"[ \t]{2,}", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()
