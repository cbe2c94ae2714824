"""HTTP clients for the issue tracker (Jira) and the source host (GitHub)."""
