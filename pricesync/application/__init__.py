"""
Application layer package.

Contains use cases that orchestrate domain logic.
This layer depends on domain ports, never on infrastructure.
"""
