"""
AI quota gateway package.

The gateway fronts client requests to a quota-limited generative-AI service,
enforcing:
- Admission: ordered quota tiers charged against a shared counter store
- Resilience: bounded retry of transient upstream overload
- Error mapping: one stable client-facing error per failure kind

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.ratelimit: Tiers, counter stores and the admission coordinator.
- app.upstream: Gemini clients, failure classification, resilient caller.
- app.domain: Request models and per-route handlers.
"""
