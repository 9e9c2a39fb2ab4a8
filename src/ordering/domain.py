"""Ordering bounded context — durable order records.

Writes each checkout's order exactly once, either through the caller's own
row-level-policed path or through the service fallback, and tracks cash on
delivery orders until the cash is collected.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
