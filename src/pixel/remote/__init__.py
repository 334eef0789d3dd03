"""Remote execution peer: channel, wire messages and correlation."""

from pixel.remote.channel import MemoryChannel, PeerChannel
from pixel.remote.correlator import DelegatedExecution, RemoteCorrelator
from pixel.remote.messages import ActionResultMessage, ExecuteActionMessage

__all__ = [
    "ActionResultMessage",
    "DelegatedExecution",
    "ExecuteActionMessage",
    "MemoryChannel",
    "PeerChannel",
    "RemoteCorrelator",
]
