"""Entry point for `python -m clusterdelta`.

Usage:
    python -m clusterdelta
    clusterdelta
"""

from __future__ import annotations

import asyncio

from clusterdelta.app import main


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
