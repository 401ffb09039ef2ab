"""connectorlock: Dependency resolution and lockfiles for workflow connectors."""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Identity string written into the ``generated_by`` field of lockfiles
# unless the caller configures another one.
_PRODUCT_ID = "connectorlock"
