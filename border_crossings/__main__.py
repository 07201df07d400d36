"""Module entry point: python -m border_crossings ..."""

from __future__ import annotations

from border_crossings.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
