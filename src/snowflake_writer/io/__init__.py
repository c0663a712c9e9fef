"""I/O ring: warehouse connection, SQL generation, staging adapters and loaders."""
