"""Core domain: labels, aggregation, redaction, loop guard and emitter."""
