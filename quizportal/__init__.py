"""Quiz and assessment attempt engine."""
