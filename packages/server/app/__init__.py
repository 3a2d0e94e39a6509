"""CampusFace access API server."""
