"""
API service package for the AFKMate Access Layer.

The API service fronts the AFKMate editor extension, enforcing:
- Access token validation: self-contained HMAC-signed tokens, no database
- Admission control: per-client fixed-window rate limits, Redis-backed
  with an in-process fallback
- Request pre-checks before any LLM call

Structure:
- app.main: FastAPI app, routes, and lifecycle wiring.
- app.tokens: Token codec and its result types.
- app.ratelimit: Policies, counting backends, and the fallback limiter.
- app.validation: Token format and analysis input checks.
- app.adapters: HTTP client for the LLM collaborator.
- app.admin: Out-of-band token issuance command.
"""
