"""
dex/ - Trading venue layer.

- registry: VenueKind -> adapter registry and quote fan-out service
- adapters/: per-venue quote capabilities
"""
