"""
Shared building blocks: resilience, caching and telemetry.
"""
