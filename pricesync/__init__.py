"""
PriceSync: market-price synchronization for the portfolio platform.

Application package root. This is a modular monolith using
hexagonal architecture (ports & adapters) with domain-driven design.

Bounded contexts:
    - market: Live/closing price sync, closing → valuation sequence, job scheduling.

Layers:
    - domain: Pure business logic, entities, ports (ABCs), errors.
    - application: Use cases and orchestration (fetch, batch, run, schedule).
    - infrastructure: Adapters (DB, market data, alerting, clock) implementing domain ports.
    - interfaces: FastAPI routers, Pydantic schemas.
    - shared: Cross-cutting concerns (errors, rate limiting, logging).
"""
