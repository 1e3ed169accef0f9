"""
Flag Gateway service package.

The gateway resolves a country identifier to a signed, time-limited flag
image URL on the image origin, enforcing:
- Validation: country codes or names normalized to a two-letter key
- Rate limiting: fixed-window counters per client key
- Caching: LRU cache with stale-while-revalidate refresh
- Coalescing: one in-flight origin fetch per key

Structure:
- app.main: FastAPI app, routes, and service wiring.
- app.adapters: HTTP clients for the origin and the country lookup service.
- app.caching: Flag cache and the in-flight fetch coalescer.
- app.ratelimit: Fixed-window limiters and client key derivation.
- app.signing: Origin request signatures.
- app.domain: Country normalization, origin resolution, flag lookups.
"""
