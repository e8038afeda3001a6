"""payhook - signed payment webhooks to order transitions and push notifications."""

__version__ = "0.1.0"
