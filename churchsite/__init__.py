"""Blog engagement backend for the church site: views, likes, engagement and stats."""

__version__ = "1.0.0"
