from __future__ import annotations

import logging
import os
import stat
from pathlib import Path
from typing import Union

from file2link.errors import ChannelError

logger = logging.getLogger(__name__)


def is_fifo(path: Union[str, Path]) -> bool:
    try:
        return stat.S_ISFIFO(os.stat(path).st_mode)
    except OSError:
        return False


def ensure_fifo(path: Union[str, Path], mode: int = 0o644) -> bool:
    """
    Make sure `path` is a FIFO, creating it if missing.

    Returns True when this call created it. Raises ChannelError when the path
    exists but is something else, or cannot be created.
    """
    p = str(path)
    try:
        st = os.stat(p)
    except FileNotFoundError:
        try:
            os.mkfifo(p, mode)
        except OSError as e:
            raise ChannelError(f"Failed to create FIFO: {e.strerror or e}", p) from e
        logger.info("FIFO created at %s", p)
        return True
    except OSError as e:
        raise ChannelError(f"Failed to get metadata for FIFO: {e.strerror or e}", p) from e

    if not stat.S_ISFIFO(st.st_mode):
        raise ChannelError("Path is not a FIFO", p)
    logger.debug("Reusing existing FIFO at %s", p)
    return False


def remove_fifo(path: Union[str, Path]) -> None:
    p = str(path)
    if not is_fifo(p):
        return
    try:
        os.unlink(p)
        logger.info("FIFO removed at %s", p)
    except OSError as e:
        logger.warning("Failed to remove FIFO at %s: %s", p, e)
