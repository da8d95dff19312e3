"""
Model-backed interview steps.

Each step (expertise detection, risk selection, diagnostic generation)
goes through StructuredCaller, returns a typed result and never raises:
a failed or skipped model call is replaced by a deterministic fallback.
"""
