"""Push notification delivery and device token lifecycle."""
