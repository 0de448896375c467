#!/usr/bin/env python3
"""
AnswerBox CLI.

Every command has a short name and a standard alias:

    NAME        ALIAS           WHAT IT DOES
    ----        -----           ----------------------------------
    dial        serve, start    Start the AnswerBox API server
    chats       ls              List a user's chats, most recent first
    show        cat             Print a chat as grouped UI blocks
    share       publish         Share a chat and print its public path
    clear       wipe            Delete every chat of a user
    flash       config, info    Show config and stats at a glance
"""

import argparse
import json
import sys

from answerbox import __version__

BANNER = r"""
    ┌──────────────────────────────────────────┐
    │   A N S W E R B O X                      │
    │   ask, search, read, answer.    v""" + __version__ + r"""   │
    └──────────────────────────────────────────┘
"""


def _store():
    from answerbox.config import get_config
    from answerbox.storage.sqlite_store import SQLiteStore

    cfg = get_config()
    return SQLiteStore(cfg.get("storage", {}).get("sqlite_path", "./data/answerbox.db"))


def _summary(component) -> str:
    """One-line description of a rendered component."""
    if component is None:
        return "(empty)"
    props = component.to_dict()["props"]
    if "message" in props:
        text = props["message"]
    elif "content" in props:
        text = props["content"]
    elif "related_queries" in props:
        text = " | ".join(props["related_queries"] or [])
    elif "result" in props:
        try:
            text = f"{len(json.loads(props['result']).get('results', []))} results"
        except (TypeError, ValueError, AttributeError):
            text = str(props["result"])
    elif "data" in props:
        results = props["data"].get("results", []) if isinstance(props["data"], dict) else []
        text = results[0].get("url", "") if results else "(no page)"
    else:
        text = props.get("title", "")
    text = str(text).replace("\n", " ")
    return f"{component.name}: {text[:100]}"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_dial(args):
    """Start the AnswerBox API server."""
    import uvicorn
    from answerbox.config import get_config, get_setting

    cfg = get_config()
    host = args.host or cfg.get("server", {}).get("host", "0.0.0.0")
    port = args.port or cfg.get("server", {}).get("port", 8000)

    print(BANNER)
    print(f"  Listening on {host}:{port}")
    print(f"  Backends: {', '.join(b.get('name', '?') for b in cfg.get('backends', [])) or 'none'}")
    print(f"  Model: {get_setting('chat', 'default_model', '') or '(per request)'}")
    print()

    uvicorn.run(
        "answerbox.main:app",
        host=host,
        port=port,
        reload=args.reload,
        log_level="info",
    )


def cmd_chats(args):
    """List chats of a user."""
    chats = _store().list_chats(args.user)
    if not chats:
        print(f"  No chats for {args.user}")
        return
    for chat in chats:
        shared = "  [shared]" if chat.is_shared else ""
        print(f"  {chat.id}  {chat.created_at[:19]}  {chat.title[:60]}{shared}")


def cmd_show(args):
    """Print a chat the way the UI groups it."""
    from answerbox.chat.grouper import group, with_last_flag
    from answerbox.chat.projector import project

    store = _store()
    if args.shared:
        chat = store.get_shared_chat(args.chat_id)
    else:
        chat = store.get_chat(args.chat_id, args.user)
    if chat is None:
        print(f"  ✗  Chat {args.chat_id} not found")
        sys.exit(1)

    print(f"  {chat.title}  ({chat.path})")
    print()
    units = group(project(chat.messages, is_share_page=args.shared, chat_id=chat.id))
    for unit, is_last in with_last_flag(units):
        marker = "└─" if is_last else "├─"
        print(f"  {marker} {unit.id}{'  (collapsed)' if unit.collapsed else ''}")
        for component in unit.components:
            print(f"  {'   ' if is_last else '│  '}  {_summary(component)}")


def cmd_share(args):
    """Share a chat and print its public path."""
    chat = _store().share_chat(args.chat_id, args.user)
    if chat is None:
        print(f"  ✗  Chat {args.chat_id} not found")
        sys.exit(1)
    print(f"  ✓  {chat.share_path}")


def cmd_clear(args):
    """Delete every chat of a user."""
    if not args.yes:
        answer = input(f"  Delete all chats of {args.user}? [y/N] ").strip().lower()
        if answer not in ("y", "yes"):
            print("  Aborted")
            return
    removed = _store().clear_chats(args.user)
    print(f"  ✓  Removed {removed} chats")


def cmd_flash(args):
    """Show config and stats at a glance."""
    from answerbox.config import get_config, get_setting
    from answerbox.storage.sqlite_store import StorageError

    cfg = get_config()

    print(BANNER)
    print("  Configuration")
    for b in cfg.get("backends", []):
        print(f"  ├─ Backend:   {b.get('name', '?')} → {b.get('url', '')} (p{b.get('priority', 99)})")
    print(f"  ├─ Model:     {get_setting('chat', 'default_model', '')}")
    print(f"  ├─ Rollback:  {get_setting('chat', 'rollback_policy', 'full')}")
    print(f"  ├─ History:   {get_setting('chat', 'history_enabled', True)}")
    print(f"  └─ SQLite:    {cfg.get('storage', {}).get('sqlite_path', '')}")

    try:
        stats = _store().get_stats()
        print()
        print("  Storage")
        print(f"  ├─ Chats:     {stats['chats']} ({stats['shared_chats']} shared)")
        print(f"  ├─ Owners:    {stats['chat_owners']}")
        print(f"  ├─ Users:     {stats['users']}")
        print(f"  └─ Searches:  {stats['searches']}")
    except StorageError as e:
        print(f"\n  Storage: unavailable ({e})")

    tools_cfg = cfg.get("tools", {})
    enabled = [
        name for name, default in (("search", True), ("retrieve", True), ("video_search", False))
        if tools_cfg.get(name, {}).get("enabled", default)
    ] if tools_cfg.get("enabled", True) else []

    print()
    print("  Tools")
    print(f"  └─ {', '.join(enabled) if enabled else 'none enabled'}")


# ---------------------------------------------------------------------------
# Parser with aliases
# ---------------------------------------------------------------------------

def _add_command(subparsers, names, help_text, func, setup_fn=None):
    """Register a command under its name and aliases."""
    p = subparsers.add_parser(names[0], help=help_text, aliases=names[1:])
    p.set_defaults(func=func)
    if setup_fn:
        setup_fn(p)
    return p


def _user_arg(p):
    p.add_argument("--user", "-u", default="anonymous", help="Chat owner (default: anonymous)")


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="answerbox",
        description="AnswerBox — conversational answer engine.",
        epilog="Run 'answerbox <command> --help' for command-specific options.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", "-V", action="version",
        version=f"answerbox {__version__}",
    )

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    def setup_dial(p):
        p.add_argument("--host", default=None, help="Override listen host")
        p.add_argument("--port", "-p", type=int, default=None, help="Override listen port")
        p.add_argument("--reload", action="store_true", help="Auto-reload on code changes (dev)")

    _add_command(sub, ["dial", "serve", "start"],
                 "Start the AnswerBox API server", cmd_dial, setup_dial)

    _add_command(sub, ["chats", "ls"], "List a user's chats", cmd_chats, _user_arg)

    def setup_show(p):
        p.add_argument("chat_id", help="Chat id")
        p.add_argument("--shared", action="store_true", help="Render as the public share page")
        _user_arg(p)

    _add_command(sub, ["show", "cat"], "Print a chat as grouped UI blocks", cmd_show, setup_show)

    def setup_share(p):
        p.add_argument("chat_id", help="Chat id")
        _user_arg(p)

    _add_command(sub, ["share", "publish"], "Share a chat", cmd_share, setup_share)

    def setup_clear(p):
        _user_arg(p)
        p.add_argument("--yes", "-y", action="store_true", help="Don't ask for confirmation")

    _add_command(sub, ["clear", "wipe"], "Delete every chat of a user", cmd_clear, setup_clear)

    _add_command(sub, ["flash", "config", "info"], "Show config and stats at a glance", cmd_flash)

    args = parser.parse_args(argv)
    if not args.command:
        print(BANNER)
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()
