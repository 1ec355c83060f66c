"""
Market bounded context: domain layer.

- Tracked instruments and fetch outcomes
- Run / sequence result variants
- Price delta rules and selection policies
- Ports for the store, provider, valuation, alerting and clock
"""
