"""Full-text retrieval over graph nodes and edges."""
