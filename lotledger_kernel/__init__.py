"""
Lotledger Kernel

Shared foundation for the allocation engines:
- Structured JSON logging
- Typed exception hierarchy with machine-readable codes
- Immutable entity, document and snapshot types
"""

__version__ = "0.1.0"
