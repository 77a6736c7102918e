"""QuickInsight utilities: database access, model client, intelligence and clustering."""
