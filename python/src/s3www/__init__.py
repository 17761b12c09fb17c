"""s3www - serve the contents of an S3 bucket as a static website."""

__version__ = "0.1.0"
