"""pulseboard: Jira/GitHub sync, task allocation and cost analytics backend."""

__version__ = "0.1.0"
