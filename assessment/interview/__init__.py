"""Interview domain: catalog, session state, scoring and block routing."""
