"""Blog publishing API: authentication, posts, categories and comments."""

__version__ = "1.0.0"
