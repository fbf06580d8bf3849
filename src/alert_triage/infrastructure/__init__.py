"""Cross-context infrastructure (database engine and sessions)."""
