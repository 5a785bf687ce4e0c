"""searchsync: keeps full-text and vector search backends in step with the record store."""
