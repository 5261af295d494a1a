"""Read API for the audit trail."""
