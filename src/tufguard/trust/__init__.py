"""TUF trust oracle façade."""

from .oracle import TargetUpdater, TrustOracleClient, trust_storage_path

__all__ = ["TargetUpdater", "TrustOracleClient", "trust_storage_path"]
