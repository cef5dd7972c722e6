"""PHIXForge: grant proposal records, portfolio metrics and Word reports."""
