"""Remote storage provider transport."""

from .drive import DriveTransport, build_multipart_body, BOUNDARY

__all__ = ["DriveTransport", "build_multipart_body", "BOUNDARY"]
