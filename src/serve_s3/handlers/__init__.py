"""Request pipelines for serve-s3 routes."""

from serve_s3.handlers.delete import delete_object
from serve_s3.handlers.reply import DeleteOptions, ServeOptions, UploadOptions
from serve_s3.handlers.serve import serve_object
from serve_s3.handlers.upload import Upload, upload_object

__all__ = [
    "delete_object",
    "DeleteOptions",
    "serve_object",
    "ServeOptions",
    "Upload",
    "upload_object",
    "UploadOptions",
]
