"""hookgate: inbound webhook verification and dispatch.

Receives webhooks from third-party providers (GitHub, Ragie, Recall.ai or any
custom source), verifies their signatures, validates payloads and dispatches
them to registered handlers.
"""

__version__ = "0.1.0"
