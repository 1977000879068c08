"""Backend-neutral encoders for records and snapshots."""
