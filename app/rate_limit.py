"""
HTTP rate limiting using slowapi.

This throttles the gate's own endpoints per client IP, independent of
the per-account lockout the gate computes.  Three tiers:

  • strict  – 10/min  (first-party IP lookup)
  • gate    – 30/min  (check / record – called around every sign-in)
  • default – 60/min  (everything else)
"""

from slowapi import Limiter

from app.dependencies import client_address

limiter = Limiter(key_func=client_address, default_limits=["60/minute"])

# Named rate strings for use in @limiter.limit() decorators
STRICT = "10/minute"    # get-client-ip
GATE = "30/minute"      # auth-rate-limit/check, auth-rate-limit/record
DEFAULT = "60/minute"   # health, client-identity
