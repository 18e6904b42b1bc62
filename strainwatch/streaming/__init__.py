"""Live delivery of strain samples.

Modules:
    hub — BroadcastHub: per-user publish/subscribe registry
    sse — Server-Sent Events framing and the per-connection stream generator
"""

from strainwatch.streaming.hub import BroadcastHub, Subscription
from strainwatch.streaming.sse import format_event, sample_stream

__all__ = ["BroadcastHub", "Subscription", "format_event", "sample_stream"]
