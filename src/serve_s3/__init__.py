"""serve-s3: serve, upload and delete S3 objects through FastAPI routes."""

__version__ = "0.1.0"
