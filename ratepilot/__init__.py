"""Hotel rate computation, guardrails and PMS rate publishing."""

__version__ = "0.1.0"
