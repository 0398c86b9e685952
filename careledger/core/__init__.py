"""
Core utilities shared across the care ledger API.

This package hosts:
- configuration helpers (env vars, thresholds, provider settings)
- cross-cutting services such as logging, the email/mailer adapter,
  the operator context and rate limit helpers.

Services and routers depend on these primitives instead of reading the
environment or talking to SMTP directly.
"""
