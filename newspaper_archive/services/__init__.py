"""Services package for the newspaper archive."""
