"""Tree projection and rendering."""
