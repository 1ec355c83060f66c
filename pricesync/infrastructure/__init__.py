"""
Infrastructure layer package.

Contains concrete implementations (adapters) of the ports
defined in the domain layer. This is where databases, market-data
APIs, mail relays and the scheduler backend live.
"""
