"""Text-generation gateway.

Async infrastructure for obtaining text from third-party backends with:
  - Fixed-window request limiter (per client key, background eviction)
  - Request gate (identity, role, rate limit)
  - Backend roster (priority-ordered fallback list)
  - Backend clients (protocol differences, outcome classification)
  - Fallback orchestrator (per-outcome retry policy with backoff)
"""
