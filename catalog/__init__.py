"""Product catalog: a validated product record over SQLite or Cosmos DB with full-text search."""
