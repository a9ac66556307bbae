"""Swiss army pen-knife for object stores and local filesystems."""

__version__ = "0.4.0"
