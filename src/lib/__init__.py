"""
Shared library code for the Luna guidance engine.

- exceptions: LunaEngineError hierarchy
- logging: structlog configuration
- circuit_breaker: resilience for external collaborators
"""
