"""Event bus and audit trail."""
