"""Utility functions for the asset kernel."""

from asset_kernel.utils.hashing import canonicalize_json, hash_audit_record, hash_payload

__all__ = ["canonicalize_json", "hash_payload", "hash_audit_record"]
