"""Query understanding and search adapters for the fragrance catalog."""
