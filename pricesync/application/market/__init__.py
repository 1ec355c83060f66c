"""
Application layer for the market bounded context.

Fetching, batching, price-update runs, the closing sequence and the
job scheduler. No framework or infrastructure imports allowed.
"""
