from __future__ import annotations

import logging

from rich.logging import RichHandler


def configure_logging(verbosity: int = 0) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # The OpenAI SDK logs every HTTP request at INFO.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
