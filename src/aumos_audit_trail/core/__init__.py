"""Core domain: audit records, versioning, actor resolution, reconstruction."""
