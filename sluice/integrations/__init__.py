"""Storage backends for the pipeline stores."""
