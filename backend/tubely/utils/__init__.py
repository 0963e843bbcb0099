"""
Utilities Package for the Tubely Backend.

Modules:
--------
aspect_ratio:
    Classification of frame geometry into landscape / portrait / other.

file_validator:
    Effective content type of an upload: declared type, libmagic sniffing
    for generic declarations, media type parsing and the video/mp4 check.

logger:
    JSON and text formatters, setup_logging for the whole process and
    add_log_context for per-request context fields.

multipart_stream:
    One file field of a multipart body, parsed off the request stream
    with python-multipart and read on demand.

security:
    Random URL-safe tokens and the object keys built from them.
"""
