"""
Infrastructure for the Luna guidance engine.

- monitoring: Prometheus metrics for evaluations, persistence and recovery
"""
