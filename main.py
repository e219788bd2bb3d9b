"""
Lumio — Entry Point.

Single entry point: `python main.py` starts the companion and its slot monitor.
"""

import logging

from lumio.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from lumio.app import main

if __name__ == "__main__":
    main()
