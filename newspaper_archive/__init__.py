"""Church newspaper archive - issue extraction pipeline."""

__version__ = "1.0.0"
