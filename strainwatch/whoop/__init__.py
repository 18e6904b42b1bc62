"""WHOOP API access for Strainwatch.

Modules:
    client    — WhoopClient: token refresh, latest cycle, profile, webhook lookups
    signature — webhook HMAC verification
"""

from strainwatch.whoop.client import WhoopClient
from strainwatch.whoop.signature import compute_signature, verify_signature

__all__ = ["WhoopClient", "compute_signature", "verify_signature"]
