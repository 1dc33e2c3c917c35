"""School Portal backend: validated repositories, caching and maintenance jobs."""

__version__ = "0.1.0"
