"""Domain layer: models, strategies, the allocation engine and the record store."""
