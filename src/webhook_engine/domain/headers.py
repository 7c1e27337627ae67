"""Outbound webhook header names."""
from __future__ import annotations

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_TYPE_HEADER = "X-Webhook-Event-Type"
EVENT_ID_HEADER = "X-Webhook-Event-Id"
DELIVERY_ID_HEADER = "X-Webhook-Delivery-Id"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
ATTEMPT_HEADER = "X-Webhook-Attempt"

# Set by the engine; subscription custom headers may not override these.
RESERVED_HEADERS = frozenset(
    name.lower()
    for name in (
        SIGNATURE_HEADER,
        EVENT_TYPE_HEADER,
        EVENT_ID_HEADER,
        DELIVERY_ID_HEADER,
        TIMESTAMP_HEADER,
        ATTEMPT_HEADER,
        "Content-Type",
        "Content-Length",
        "Host",
        "User-Agent",
    )
)
