"""
Asset Kernel - multi-tenant enterprise asset registry core.

Covers the parts of the registry that must stay correct under concurrent
requests and shared storage:
- Tenant-scoped identifier allocation (optimistic insert + bounded retry)
- Role/permission authorization with mandatory tenant scoping
- Deterministic depreciation accounting (Decimal, injected clock)
- Asset lifecycle state transitions driven by movements and work orders
- Hash-chained, append-only audit trail
"""

__version__ = "0.1.0"
