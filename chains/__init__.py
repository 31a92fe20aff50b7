"""
chains/ - Blockchain interaction layer.

Modules:
- providers: JSON-RPC provider with failover and retry
- block_feed: New-block event feed (websocket with polling fallback)
"""

from chains.block_feed import BlockEventFeed
from chains.providers import RPCProvider, RPCResponse, RPCStats

__all__ = [
    "BlockEventFeed",
    "RPCProvider",
    "RPCResponse",
    "RPCStats",
]
