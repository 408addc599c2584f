"""
Market data provider adapters.

- CoinGecko (crypto quotes and history, batched)
- Yahoo Finance (equities and crypto pairs, crumb session for batch quotes)
- Alpha Vantage (single-symbol quotes, history, news; API key required)
- Stooq (equity quotes only)
"""
