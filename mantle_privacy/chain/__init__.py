"""Chain access: ABI helpers, typed events and JSON-RPC clients."""
