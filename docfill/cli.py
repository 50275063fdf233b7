from __future__ import annotations

import argparse
import os
import sys

from .core import service
from .core.config import configure_logging
from .core.state import SessionNotFoundError


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fill a document template through a guided conversation.")
    parser.add_argument("template", nargs="?", help="Path to a .docx or .txt template")
    parser.add_argument("--resume", metavar="SESSION_ID", help="Continue an existing session")
    parser.add_argument("--format", choices=("docx", "txt"), default="docx", help="Export format")
    parser.add_argument("--out-dir", default=None, help="Where to write the filled document")
    args = parser.parse_args(argv)
    if not args.template and not args.resume:
        parser.error("a template path or --resume is required")
    return args


def run(args: argparse.Namespace) -> int:
    if args.resume:
        try:
            payload = service.resume(args.resume)
        except SessionNotFoundError:
            print(f"No session {args.resume}", file=sys.stderr)
            return 1
    else:
        with open(args.template, "rb") as f:
            data = f.read()
        payload = service.create_session(file_bytes=data, filename=os.path.basename(args.template))
        print(payload["greeting"])

    session_id = payload["session_id"]
    print(f"(session {session_id})\n")
    print(payload["message"])

    while not payload["is_complete"]:
        try:
            user_text = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print(f"\nSession saved. Resume with --resume {session_id}")
            return 0
        if not user_text:
            continue
        payload = service.message(session_id, user_text)
        print(payload["message"])

    path = service.export(session_id, fmt=args.format, out_dir=args.out_dir)
    print(f"\nSaved: {path}")
    return 0


def main(argv=None) -> int:
    configure_logging()
    return run(parse_args(argv))


if __name__ == "__main__":
    sys.exit(main())
