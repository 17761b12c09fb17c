"""HTTP request handlers for s3www."""
