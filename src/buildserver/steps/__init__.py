"""Actions that make up the deploy pipeline."""
