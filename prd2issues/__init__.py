"""prd2issues: decompose a requirements document into a GitHub issue hierarchy."""

__version__ = "0.1.0"
