"""guildscan: periodic guild-count collection for registered applications."""

__version__ = "0.1.0"
