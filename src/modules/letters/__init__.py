"""Letter document helpers: text-to-PDF rendering and page counting."""
