"""
HostMetrics Kernel

Persistence, domain types, and read models for the calculation-rule engine:
- Typed exceptions with machine-readable codes
- Structured JSON logging
- Template and rule ORM models with per-owner write serialization
- Pure domain values (platforms, canonical financial fields, DTOs)
"""

__version__ = "0.1.0"
