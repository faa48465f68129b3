"""TCM consultation backend: complexity routing, fallback generation, safety validation."""

__version__ = "0.1.0"
