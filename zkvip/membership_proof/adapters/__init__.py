"""Proof backend adapters (imported lazily by the factory)."""
