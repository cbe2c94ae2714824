"""AI-generated HR reports."""
