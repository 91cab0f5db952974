from __future__ import annotations

import html
import re
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup  # type: ignore
from pydantic import BaseModel, Field, ValidationError

from .log import get_logger
from .model import BookmarkNode
from .tree import favicon_url, iter_nodes, new_id

log = get_logger(__name__)
_WS_RE = re.compile(r"\s+")


class NodeModel(BaseModel):
    id: str
    title: str = ""
    url: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    children: Optional[List["NodeModel"]] = None


class Preferences(BaseModel):
    theme: Optional[str] = None


class ExportDocument(BaseModel):
    bookmarks: List[NodeModel] = Field(default_factory=list)
    preferences: Preferences = Field(default_factory=Preferences)


NodeModel.model_rebuild()


# -- JSON -----------------------------------------------------------------


def export_json(tree: List[BookmarkNode], theme: Optional[str] = None) -> str:
    doc = ExportDocument(
        bookmarks=[_to_model(n) for n in tree],
        preferences=Preferences(theme=theme),
    )
    return doc.model_dump_json(indent=2, exclude_none=True)


def import_json(text: str) -> Tuple[List[BookmarkNode], Optional[str]]:
    try:
        doc = ExportDocument.model_validate_json(text)
    except ValidationError as e:
        raise ValueError(f"invalid bookmarks export: {e.error_count()} error(s); first: {e.errors()[0]['msg']}") from e
    tree = [_from_model(m) for m in doc.bookmarks]
    seen = set()
    for node in iter_nodes(tree):
        if node.id in seen:
            raise ValueError(f"invalid bookmarks export: duplicate id {node.id!r}")
        seen.add(node.id)
    return tree, doc.preferences.theme


def _to_model(node: BookmarkNode) -> NodeModel:
    return NodeModel(
        id=node.id,
        title=node.title,
        url=node.url,
        description=node.description,
        icon=node.icon,
        children=None if node.children is None else [_to_model(c) for c in node.children],
    )


def _from_model(m: NodeModel) -> BookmarkNode:
    return BookmarkNode(
        id=m.id,
        title=m.title,
        url=m.url,
        description=m.description,
        icon=m.icon,
        children=None if m.children is None else [_from_model(c) for c in m.children],
    )


# -- Netscape bookmark HTML -------------------------------------------------


def parse_netscape_html(text: str, *, derive_icons: bool = True) -> List[BookmarkNode]:
    soup = BeautifulSoup(text, "lxml")
    dl = soup.find("dl")
    if dl is None:
        raise ValueError("Could not find <DL> root in bookmarks file")
    return _walk_dl(dl, derive_icons)


def _walk_dl(dl, derive_icons: bool) -> List[BookmarkNode]:
    out: List[BookmarkNode] = []
    for dt in _children_named(dl, "dt"):
        _walk_dt(dt, out, derive_icons)
    return out


def _walk_dt(dt, out: List[BookmarkNode], derive_icons: bool) -> None:
    h3 = next(_children_named(dt, "h3"), None)
    a = next(_children_named(dt, "a"), None)
    if h3 is not None:
        name = _WS_RE.sub(" ", h3.get_text(strip=True))
        sub_dl = next(_children_named(dt, "dl"), None) or _next_element_named(dt, "dl")
        if sub_dl is None:
            log.warning("Folder without DL: %s", name)
        children = _walk_dl(sub_dl, derive_icons) if sub_dl is not None else []
        out.append(BookmarkNode(id=new_id(), title=name, children=children))
    elif a is not None and a.get("href"):
        url = a.get("href")
        title = _WS_RE.sub(" ", a.get_text(strip=True)) or url
        icon = a.get("icon_uri") or (favicon_url(url) if derive_icons else None)
        dd = next(_children_named(dt, "dd"), None) or _next_element_named(dt, "dd")
        description = _own_text(dd) if dd is not None else ""
        out.append(
            BookmarkNode(
                id=new_id(),
                title=title,
                url=url,
                description=description or None,
                icon=icon or None,
            )
        )
    # Malformed exports nest sibling DTs inside the previous DT (or its DD).
    holders = [dt] + list(_children_named(dt, "dd"))
    trailing_dd = _next_element_named(dt, "dd")
    if trailing_dd is not None:
        holders.append(trailing_dd)
    for holder in holders:
        for inner in _children_named(holder, "dt"):
            _walk_dt(inner, out, derive_icons)


def _children_named(el, name: str):
    # The parser may wrap items in the stray <p> tags of the format.
    for child in el.find_all(True, recursive=False):
        if child.name == name:
            yield child
        elif child.name == "p":
            yield from _children_named(child, name)


def _own_text(el) -> str:
    return _WS_RE.sub(" ", "".join(el.find_all(string=True, recursive=False))).strip()


def _next_element_named(el, name: str):
    nxt = el.find_next_sibling(True)
    return nxt if nxt is not None and nxt.name == name else None


def write_netscape_html(tree: List[BookmarkNode], title: str = "Bookmarks") -> str:
    lines: List[str] = [
        "<!DOCTYPE NETSCAPE-Bookmark-file-1>",
        "<!-- This is an automatically generated file. DO NOT EDIT! -->",
        '<META HTTP-EQUIV="Content-Type" CONTENT="text/html; charset=UTF-8">',
        f"<TITLE>{html.escape(title)}</TITLE>",
        f"<H1>{html.escape(title)}</H1>",
        "<DL><p>",
    ]
    _write_nodes(lines, tree, "    ")
    lines.append("</DL><p>")
    return "\n".join(lines) + "\n"


def _write_nodes(lines: List[str], nodes: List[BookmarkNode], indent: str) -> None:
    for node in nodes:
        if node.is_folder:
            lines.append(f"{indent}<DT><H3>{html.escape(node.title)}</H3>")
            lines.append(f"{indent}<DL><p>")
            _write_nodes(lines, node.children or [], indent + "    ")
            lines.append(f"{indent}</DL><p>")
            continue
        attrs = [f'HREF="{html.escape(node.url or "", quote=True)}"']
        if node.icon:
            attrs.append(f'ICON_URI="{html.escape(node.icon, quote=True)}"')
        lines.append(f"{indent}<DT><A {' '.join(attrs)}>{html.escape(node.title)}</A>")
        if node.description:
            lines.append(f"{indent}<DD>{html.escape(node.description)}")
