from __future__ import annotations

import errno
import logging
import os
from pathlib import Path
from typing import Union

from file2link.control.protocol import ControlCommand, encode_command
from file2link.errors import ChannelError

logger = logging.getLogger(__name__)


def send_command(path: Union[str, Path], command: ControlCommand) -> None:
    """
    Write one command line into the control pipe and return.

    Fire-and-forget: the server does not reply, so success only means the line
    reached the pipe. The open is non-blocking, so a FIFO without a reader
    fails immediately with ChannelError instead of hanging. No retries.
    """
    p = str(path)
    data = encode_command(command)

    try:
        fd = os.open(p, os.O_WRONLY | os.O_NONBLOCK)
    except OSError as e:
        if e.errno == errno.ENXIO:
            raise ChannelError("No server is listening on the control pipe", p) from e
        raise ChannelError(f"Failed to open FIFO: {e.strerror or e}", p) from e

    try:
        written = os.write(fd, data)
    except OSError as e:
        raise ChannelError(f"Failed to write to the FIFO: {e.strerror or e}", p) from e
    finally:
        os.close(fd)

    if written != len(data):
        raise ChannelError(f"Short write to the FIFO ({written}/{len(data)} bytes)", p)

    logger.info("Command '%s' sent to %s", command.value, p)
