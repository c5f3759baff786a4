"""Search and similarity engine for saved bookmark collections."""
