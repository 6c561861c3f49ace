"""Graph model, builder, entity resolution and PageRank."""
