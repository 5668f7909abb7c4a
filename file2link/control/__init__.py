"""
Local control channel (named pipe) and the periodic refresh scheduler.

Only processes that can write the FIFO can drive the server; there is no
network-facing admin surface.
"""

from file2link.control.client import send_command
from file2link.control.listener import ControlListener, ListenerState
from file2link.control.protocol import ControlCommand, decode_command, encode_command
from file2link.control.scheduler import RefreshScheduler

__all__ = [
    "ControlCommand",
    "ControlListener",
    "ListenerState",
    "RefreshScheduler",
    "decode_command",
    "encode_command",
    "send_command",
]
