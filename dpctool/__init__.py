"""Extract, rebuild and validate FUEL DPC archives and compute their name hashes."""

__version__ = "0.1.0"