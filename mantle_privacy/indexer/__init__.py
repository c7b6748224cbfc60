"""Chain event indexer: durable store, owned state, ingestion loop and query API."""
