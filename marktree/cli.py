from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import Settings, load_settings
from .db import BookmarksDB
from .errors import MarktreeError
from .history import TransactionLog
from .interchange import export_json, import_json, parse_netscape_html, write_netscape_html
from .log import LogConfig, get_logger, setup_logging
from .model import BookmarkNode
from .prefs import THEMES, PreferenceStore
from .store import BookmarkStore
from .tree import add_bookmark_to_tree, favicon_url, find_bookmark, new_id, path_to_bookmark
from .undo import UndoManager

log = get_logger(__name__)

ROOT = "root"


@dataclass
class Session:
    cfg: Settings
    db: BookmarksDB
    store: BookmarkStore
    prefs: PreferenceStore
    history: TransactionLog
    undo: UndoManager


def main(argv: List[str] | None = None) -> int:
    p = argparse.ArgumentParser(
        prog="marktree",
        description="Hierarchical bookmark organizer backed by a local SQLite database.",
    )
    p.add_argument("-V", "--version", action="version", version=f"marktree {__version__}")
    p.add_argument("--config", default=None, help="YAML config file (optional). Env vars override defaults.")
    p.add_argument("--db", default=None, help="Bookmark database path (overrides MARKTREE_DB/config).")
    p.add_argument("--log-level", default=None, help="DEBUG/INFO/WARN/ERROR (overrides env/config).")
    p.add_argument("--no-color", action="store_true", help="Disable colored logging.")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("show", help="Print the bookmark tree.")
    sp.add_argument("--ids", action="store_true", help="Show bookmark ids.")
    sp.add_argument("--from", dest="from_id", default=None, help="Only print the subtree of this id.")

    sp = sub.add_parser("add", help="Add a bookmark or folder.")
    sp.add_argument("--title", required=True)
    sp.add_argument("--url", default=None, help="Link URL; omit to create a folder.")
    sp.add_argument("--description", default=None)
    sp.add_argument("--parent", default=ROOT, help="Parent folder id (default: root level).")
    sp.add_argument("--index", type=int, default=None, help="Position among siblings (default: end).")

    sp = sub.add_parser("edit", help="Edit a bookmark's fields.")
    sp.add_argument("id")
    sp.add_argument("--title", default=None)
    sp.add_argument("--url", default=None)
    sp.add_argument("--description", default=None)
    sp.add_argument("--icon", default=None)

    sp = sub.add_parser("rm", help="Delete a bookmark and everything under it.")
    sp.add_argument("id", nargs="?")
    sp.add_argument("--all", action="store_true", help="Delete every bookmark.")

    sp = sub.add_parser("reorder", help="Change a bookmark's position among its siblings.")
    sp.add_argument("id")
    sp.add_argument("index", type=int)

    sp = sub.add_parser("move", help="Move a bookmark under another folder.")
    sp.add_argument("id")
    sp.add_argument("--to", required=True, help=f"New parent id, or '{ROOT}'.")
    sp.add_argument("--index", type=int, default=None)

    sub.add_parser("undo", help="Undo the last reorder/move.")
    sub.add_parser("redo", help="Redo the last undone reorder/move.")

    sp = sub.add_parser("history", help="List recorded reorder/move transactions.")
    sp.add_argument("--limit", type=int, default=None)

    sp = sub.add_parser("import", help="Import bookmarks from a JSON export or Netscape HTML file.")
    sp.add_argument("path")
    sp.add_argument("--format", choices=("auto", "json", "html"), default="auto")
    sp.add_argument("--into", default=None, help="Append under this folder id instead of replacing everything.")

    sp = sub.add_parser("export", help="Export bookmarks to JSON or Netscape HTML.")
    sp.add_argument("path")
    sp.add_argument("--format", choices=("auto", "json", "html"), default="auto")

    sp = sub.add_parser("theme", help="Show or set the theme preference.")
    sp.add_argument("value", nargs="?", choices=THEMES)

    sub.add_parser("check", help="Verify parent pointers and sibling ordering.")

    args = p.parse_args(argv)
    cfg = load_settings(args.config)
    if args.db:
        cfg.db_path = args.db
    if args.log_level:
        cfg.log_level = args.log_level
    if args.no_color:
        cfg.no_color = True
    setup_logging(LogConfig(level=cfg.log_level, no_color=cfg.no_color, log_file=cfg.log_file))

    handler = _COMMANDS.get(args.cmd)
    if handler is None:
        return 2
    try:
        with BookmarksDB(cfg.db_path, busy_timeout_ms=cfg.busy_timeout_ms) as db:
            store = BookmarkStore(db)
            prefs = PreferenceStore(db)
            history = TransactionLog(db, capacity=cfg.history_limit)
            session = Session(
                cfg=cfg,
                db=db,
                store=store,
                prefs=prefs,
                history=history,
                undo=UndoManager(store, history, prefs=prefs),
            )
            return handler(args, session)
    except (MarktreeError, ValueError) as e:
        log.error("%s", e)
        return 1


def _parent_arg(value: Optional[str]) -> Optional[str]:
    if value is None or value == ROOT:
        return None
    return value


def _cmd_show(args, s: Session) -> int:
    tree = s.store.load_all()
    if args.from_id:
        node = find_bookmark(tree, args.from_id)
        if node is None:
            log.error("Bookmark not found: %s", args.from_id)
            return 1
        crumbs = [find_bookmark(tree, i).title for i in path_to_bookmark(tree, args.from_id)]
        print(" / ".join(crumbs))
        tree = node.children or []
    if not tree:
        print("(no bookmarks)")
        return 0
    for line in _render(tree, show_ids=args.ids):
        print(line)
    return 0


def _render(nodes: List[BookmarkNode], *, show_ids: bool, depth: int = 0) -> List[str]:
    out: List[str] = []
    for n in nodes:
        pad = "  " * depth
        suffix = f"  [{n.id}]" if show_ids else ""
        if n.is_folder:
            out.append(f"{pad}+ {n.title}{suffix}")
            out.extend(_render(n.children or [], show_ids=show_ids, depth=depth + 1))
        else:
            out.append(f"{pad}- {n.title} <{n.url}>{suffix}")
    return out


def _cmd_add(args, s: Session) -> int:
    node = BookmarkNode(
        id=new_id(),
        title=args.title,
        url=args.url,
        description=args.description,
        icon=(favicon_url(args.url) or None) if s.cfg.derive_icons else None,
        children=None if args.url else [],
    )
    pos = s.store.add(node, _parent_arg(args.parent), args.index)
    log.info("Added %s %r at position %d", "bookmark" if args.url else "folder", node.title, pos)
    print(node.id)
    return 0


def _cmd_edit(args, s: Session) -> int:
    fields = {
        k: getattr(args, k)
        for k in ("title", "url", "description", "icon")
        if getattr(args, k) is not None
    }
    if args.url and args.icon is None and s.cfg.derive_icons:
        fields["icon"] = favicon_url(args.url) or None
    if not fields:
        log.warning("Nothing to change for %s", args.id)
        return 0
    rec = s.store.update(args.id, **fields)
    log.info("Updated %s (%s)", rec.id, ", ".join(sorted(fields)))
    return 0


def _cmd_rm(args, s: Session) -> int:
    if args.all == bool(args.id):
        log.error("Pass either a bookmark id or --all.")
        return 2
    if args.all:
        log.info("Deleted all %d bookmark(s)", s.store.clear())
        return 0
    removed = s.store.delete_subtree(args.id)
    if removed:
        log.info("Deleted %d bookmark(s)", removed)
    else:
        log.info("Nothing to delete: %s", args.id)
    return 0


def _cmd_reorder(args, s: Session) -> int:
    rec = s.store.get(args.id)
    parent_id = rec.parent_id if rec else None
    tx = s.undo.reorder(args.id, args.index, parent_id)
    log.info("Moved %s from position %d to %d", args.id, tx.data["oldIndex"], tx.data["newIndex"])
    return 0


def _cmd_move(args, s: Session) -> int:
    tx = s.undo.move(args.id, _parent_arg(args.to), args.index)
    log.info(
        "Moved %s from %s to %s (position %d)",
        args.id,
        tx.data["oldParentId"] or ROOT,
        tx.data["newParentId"] or ROOT,
        tx.data["newIndex"],
    )
    return 0


def _cmd_undo(args, s: Session) -> int:
    if s.undo.undo() is None:
        log.info("Nothing to undo.")
    return 0


def _cmd_redo(args, s: Session) -> int:
    if s.undo.redo() is None:
        log.info("Nothing to redo.")
    return 0


def _cmd_history(args, s: Session) -> int:
    entries = s.history.list(args.limit or s.cfg.history_limit)
    live = s.undo.entries
    current = live[s.undo.history_index].timestamp if s.undo.history_index >= 0 else None
    for tx in entries:
        marker = "*" if tx.timestamp == current else " "
        when = datetime.fromtimestamp(tx.timestamp / 1_000_000).isoformat(timespec="seconds")
        details = ", ".join(f"{k}={tx.data[k]}" for k in sorted(tx.data))
        print(f"{marker} {when} {tx.action} {details}")
    return 0


def _detect_format(path: Path, fmt: str) -> str:
    if fmt != "auto":
        return fmt
    return "html" if path.suffix.lower() in (".html", ".htm") else "json"


def _cmd_import(args, s: Session) -> int:
    path = Path(args.path)
    if not path.exists():
        log.error("Input file not found: %s", path)
        return 2
    text = path.read_text(encoding="utf-8", errors="replace")
    theme = None
    if _detect_format(path, args.format) == "html":
        imported = parse_netscape_html(text, derive_icons=s.cfg.derive_icons)
    else:
        imported, theme = import_json(text)

    if args.into:
        tree = s.store.load_all()
        parent_id = _parent_arg(args.into)
        if parent_id is not None and find_bookmark(tree, parent_id) is None:
            log.error("Bookmark not found: %s", parent_id)
            return 1
        for node in imported:
            tree = add_bookmark_to_tree(tree, parent_id, node)
        imported = tree
    count = s.store.save_all(imported)
    if theme in THEMES:
        s.prefs.set_theme(theme)
    log.info("Imported bookmarks from %s (%d records stored)", path, count)
    return 0


def _cmd_export(args, s: Session) -> int:
    path = Path(args.path)
    tree = s.store.load_all()
    if _detect_format(path, args.format) == "html":
        text = write_netscape_html(tree)
    else:
        text = export_json(tree, s.prefs.theme())
    path.write_text(text, encoding="utf-8")
    log.info("Wrote %d top-level bookmark(s) to %s", len(tree), path)
    return 0


def _cmd_theme(args, s: Session) -> int:
    if args.value:
        s.prefs.set_theme(args.value)
    print(s.prefs.theme() or "system")
    return 0


def _cmd_check(args, s: Session) -> int:
    try:
        s.store.validate_integrity()
    except RuntimeError as e:
        log.error("%s", e)
        return 1
    print(f"ok ({s.store.count()} bookmarks)")
    return 0


_COMMANDS = {
    "show": _cmd_show,
    "add": _cmd_add,
    "edit": _cmd_edit,
    "rm": _cmd_rm,
    "reorder": _cmd_reorder,
    "move": _cmd_move,
    "undo": _cmd_undo,
    "redo": _cmd_redo,
    "history": _cmd_history,
    "import": _cmd_import,
    "export": _cmd_export,
    "theme": _cmd_theme,
    "check": _cmd_check,
}
