"""
src/secure_store/__main__.py - Command Line Entry Point

Usage: python -m secure_store [--config secure_store.json] [--root DIR]
"""

import argparse
import logging
import sys
from pathlib import Path

from .config import DEFAULT_CONFIG_PATH, load_config
from .errors import StoreError
from .file_service import open_store
from .shell import SecureShell


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Secure File Manager (encrypted, tamper-evident)")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH,
                   help="JSON configuration file (created with defaults if missing)")
    p.add_argument("--root", help="Override the authorized root directory")
    p.add_argument("-v", "--verbose", action="store_true", help="Show diagnostic logging")
    return p


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    try:
        config = load_config(args.config)
        if args.root:
            config.root_dir = args.root
        service = open_store(config)
    except StoreError as e:
        print(f"Cannot start: {e.message}", file=sys.stderr)
        return 1

    try:
        SecureShell(service).run()
    finally:
        service.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
