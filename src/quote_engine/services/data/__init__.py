"""
Provider resolution.

- classifier: symbol -> instrument class and provider-specific symbol
- orchestrator: fallback chains, batching, pacing and deadline
- aggregator: outcomes -> AggregateResult with provenance label
- fx: EUR/USD rate and USD -> EUR rescaling
- indices: index catalog and cumulative-return series
"""
