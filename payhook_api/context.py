"""Request context management for observability.

Context variables for correlating log records across async boundaries.
"""

from contextvars import ContextVar

# Request ID - unique per HTTP request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Upstream event currently being processed
event_id_var: ContextVar[str] = ContextVar("event_id", default="")

# Order referenced by the event being processed
order_id_var: ContextVar[str] = ContextVar("order_id", default="")
