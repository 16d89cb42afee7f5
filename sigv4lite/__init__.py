"""
AWS Signature Version 4 - Standalone Header Signing

This package computes the SigV4 Authorization header (and its companion
X-Amz-* headers) for a single HTTP request without depending on botocore.
"""

from .exceptions import ConfigurationError, EncodingError, SigningError
from .sigv4 import (
    ALGORITHM,
    AMZ_DATE_FORMAT,
    DATE_STAMP_FORMAT,
    EMPTY_SHA256_HASH,
    Credentials,
    Headers,
    RequestDescriptor,
    Service,
    SigV4Signer,
    TimestampPair,
    authorization_header,
    canonical_headers,
    canonical_request,
    compute_signature,
    credential_scope,
    derive_signing_key,
    make_timestamps,
    normalize_url_path,
    payload_hash,
    sign,
    string_to_sign,
)

__version__ = "0.1.0"
__all__ = [
    "sign",
    "SigV4Signer",
    "Credentials",
    "RequestDescriptor",
    "TimestampPair",
    "Service",
    "Headers",
    "SigningError",
    "ConfigurationError",
    "EncodingError",
    "make_timestamps",
    "normalize_url_path",
    "payload_hash",
    "canonical_headers",
    "canonical_request",
    "credential_scope",
    "string_to_sign",
    "derive_signing_key",
    "compute_signature",
    "authorization_header",
    "ALGORITHM",
    "AMZ_DATE_FORMAT",
    "DATE_STAMP_FORMAT",
    "EMPTY_SHA256_HASH",
]
