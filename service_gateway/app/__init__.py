"""
Anime content aggregation gateway.

The gateway fronts several third-party content sources behind one API,
enforcing:
- Rate limiting: fixed-window counters per client identity
- Response caching: per-route TTL policy over a pluggable store
- Cache-Control annotation for downstream HTTP caches and CDNs

Structure:
- app.main: FastAPI app, routes, and lifecycle wiring.
- app.adapters: HTTP clients for upstream content sources.
- app.caching: Store backends, cache policy engine, header writer.
- app.ratelimit: Fixed-window limiter and identity extraction.
- app.domain: Request pipeline middleware composing the above.
"""
