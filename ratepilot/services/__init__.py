"""Stateful services: persistence, PMS adapter, push queue, orchestration."""
