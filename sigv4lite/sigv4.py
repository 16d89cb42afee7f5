"""
AWS Signature Version 4 header signing.

The signing pipeline always runs in this order:

    timestamps -> payload hash -> canonical headers -> canonical request
    -> credential scope -> string to sign -> signing key -> signature

Each stage is a plain function so it can be checked against published test
vectors on its own. ``sign`` wires them together and is the entry point most
callers need; ``SigV4Signer`` wraps it for clients that sign many requests
with the same credentials.

See: https://docs.aws.amazon.com/IAM/latest/UserGuide/create-signed-request.html
"""
import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Tuple, Union
from urllib.parse import parse_qsl, quote, urlsplit

from .exceptions import ConfigurationError, EncodingError

logger = logging.getLogger(__name__)

Headers = Dict[str, Any]
Body = Union[bytes, bytearray, str]

ALGORITHM = 'AWS4-HMAC-SHA256'
AMZ_DATE_FORMAT = '%Y%m%dT%H%M%SZ'
DATE_STAMP_FORMAT = '%Y%m%d'
SCOPE_TERMINATOR = 'aws4_request'
EMPTY_SHA256_HASH = 'e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855'
DEFAULT_CONTENT_TYPE = 'application/x-www-form-urlencoded'

_DEFAULT_PORTS = {'http': 80, 'https': 443}
_UNRESERVED = '-_.~'


class Service(str, Enum):
    S3 = 's3'
    DYNAMODB = 'dynamodb'
    LAMBDA = 'lambda'
    IAM = 'iam'
    STS = 'sts'
    EC2 = 'ec2'
    EXECUTE_API = 'execute-api'


@dataclass(frozen=True)
class Credentials:
    access_key: str
    secret_key: str = field(repr=False)
    region: str
    service: Union[str, Service]
    session_token: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class RequestDescriptor:
    """The parts of an HTTP request that take part in the signature.

    ``canonical_uri`` and ``query_string`` must already be in canonical
    (URI-encoded, sorted) form; ``from_url`` builds both from a plain URL.
    """
    method: str
    host: str
    content_type: Optional[str] = None
    canonical_uri: str = '/'
    query_string: str = ''
    body: Optional[Body] = b''
    headers: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_url(
            cls,
            method: str,
            url: str,
            content_type: Optional[str] = None,
            body: Optional[Body] = b'',
            headers: Optional[Mapping[str, Any]] = None,
            normalize_path: bool = True
    ) -> 'RequestDescriptor':
        """Split ``url`` into host, canonical URI and canonical query string.

        Dot segments and repeated slashes are removed from the path unless
        ``normalize_path`` is false, which S3 requires.
        """
        parts = urlsplit(url)
        try:
            port = parts.port
        except ValueError as e:
            raise ConfigurationError(f"Invalid port in URL: {url}", 'host') from e

        host = parts.hostname
        if not host:
            raise ConfigurationError(f"URL has no host: {url}", 'host')
        if ':' in host:
            host = f'[{host}]'
        if port is not None and port != _DEFAULT_PORTS.get(parts.scheme):
            host = f'{host}:{port}'

        path = parts.path or '/'
        if normalize_path:
            path = normalize_url_path(path)

        return cls(
            method=method,
            host=host,
            content_type=content_type,
            canonical_uri=quote(path, safe='/~'),
            query_string=canonical_query_string(parts.query),
            body=body,
            headers=dict(headers or {}),
        )


class TimestampPair(NamedTuple):
    amz_date: str
    date_stamp: str


def normalize_url_path(path: str) -> str:
    """Remove dot segments (RFC 3986 5.2.4) and collapse repeated slashes."""
    if not path:
        return '/'
    segments: List[str] = []
    for segment in path.split('/'):
        if not segment or segment == '.':
            continue
        if segment == '..':
            if segments:
                segments.pop()
        else:
            segments.append(segment)
    first = '/' if path.startswith('/') else ''
    last = '/' if path.endswith('/') and segments else ''
    return first + '/'.join(segments) + last


def canonical_query_string(query: str) -> str:
    """Percent-encode each key/value pair and sort the pairs."""
    pairs = sorted(
        (quote(key, safe=_UNRESERVED), quote(value, safe=_UNRESERVED))
        for key, value in parse_qsl(query, keep_blank_values=True)
    )
    return '&'.join(f'{key}={value}' for key, value in pairs)


def _service_name(service: Union[str, Service, None]) -> Optional[str]:
    if isinstance(service, Service):
        return service.value
    return service


def _require_text(value: Any, name: str) -> None:
    if not isinstance(value, str) or not value:
        raise ConfigurationError(f"Missing required field: {name}", name)


def _validate(credentials: Optional[Credentials], request: Optional[RequestDescriptor]) -> None:
    if credentials is None:
        raise ConfigurationError("Credentials are required", 'credentials')
    if request is None:
        raise ConfigurationError("Request descriptor is required", 'request')

    _require_text(getattr(credentials, 'access_key', None), 'access_key')
    _require_text(getattr(credentials, 'secret_key', None), 'secret_key')
    _require_text(getattr(credentials, 'region', None), 'region')
    _require_text(_service_name(getattr(credentials, 'service', None)), 'service')
    token = getattr(credentials, 'session_token', None)
    if token is not None and not isinstance(token, str):
        raise ConfigurationError("session_token must be a string", 'session_token')

    _require_text(getattr(request, 'method', None), 'method')
    _require_text(getattr(request, 'host', None), 'host')
    if not isinstance(getattr(request, 'content_type', None), str):
        raise ConfigurationError("Missing required field: content_type", 'content_type')
    for name in ('canonical_uri', 'query_string'):
        value = getattr(request, name, None)
        if value is not None and not isinstance(value, str):
            raise ConfigurationError(f"{name} must be a string, not {type(value).__name__}", name)
    headers = getattr(request, 'headers', None)
    if headers is not None and not isinstance(headers, Mapping):
        raise ConfigurationError(f"headers must be a mapping, not {type(headers).__name__}", 'headers')


def _encode(text: str, what: str) -> bytes:
    try:
        return text.encode('utf-8')
    except UnicodeEncodeError as e:
        raise EncodingError(f"{what} cannot be encoded as UTF-8") from e


def _body_bytes(body: Optional[Body]) -> bytes:
    if body is None:
        return b''
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    if isinstance(body, str):
        return _encode(body, 'Request body')
    raise EncodingError(f"Request body must be bytes or str, not {type(body).__name__}")


def _sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _hmac_sha256(key: bytes, msg: bytes) -> bytes:
    return hmac.new(key, msg, hashlib.sha256).digest()


def _header_name(name: Any) -> str:
    if not isinstance(name, str):
        raise EncodingError(f"Header names must be str, not {type(name).__name__}")
    lname = name.strip().lower()
    if not lname:
        raise ConfigurationError("Header names must not be empty", 'headers')
    _encode(lname, f"Header name {lname!r}")
    return lname


def _header_value(value: Any, name: str) -> str:
    if isinstance(value, (bytes, bytearray)):
        try:
            text = bytes(value).decode('utf-8')
        except UnicodeDecodeError as e:
            raise EncodingError(f"Value of header {name!r} is not valid UTF-8") from e
    elif isinstance(value, str):
        text = value
    elif isinstance(value, int) and not isinstance(value, bool):
        text = str(value)
    else:
        raise EncodingError(f"Value of header {name!r} must be str, bytes or int, not {type(value).__name__}")
    # trimall: strip both ends and collapse inner whitespace runs
    text = ' '.join(text.split())
    _encode(text, f"Value of header {name!r}")
    return text


def _headers_to_sign(caller: Mapping[str, Any], mandatory: Mapping[str, str]) -> Dict[str, str]:
    merged: Dict[str, List[str]] = {}
    for name, value in caller.items():
        lname = _header_name(name)
        merged.setdefault(lname, []).append(_header_value(value, lname))

    headers = {name: ','.join(values) for name, values in merged.items()}
    headers.update(mandatory)
    return headers


def make_timestamps(now: datetime) -> TimestampPair:
    """Format ``now`` as the X-Amz-Date value and the scope date stamp.

    Naive datetimes are taken to be UTC already.
    """
    if not isinstance(now, datetime):
        raise ConfigurationError("now must be a datetime", 'now')
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    else:
        now = now.astimezone(timezone.utc)
    return TimestampPair(now.strftime(AMZ_DATE_FORMAT), now.strftime(DATE_STAMP_FORMAT))


def payload_hash(body: Optional[Body]) -> str:
    return _sha256_hex(_body_bytes(body))


def canonical_headers(headers: Mapping[str, str]) -> Tuple[str, str]:
    """Render the canonical headers block and the signed headers list.

    ``headers`` must map lowercase names to already trimmed values. The
    block ends with a newline after its last entry.
    """
    names = sorted(headers)
    block = ''.join(f'{name}:{headers[name]}\n' for name in names)
    return block, ';'.join(names)


def canonical_request(
        method: str,
        canonical_uri: str,
        query_string: str,
        headers_block: str,
        signed_headers: str,
        payload_digest: str
) -> str:
    return '\n'.join([
        method,
        canonical_uri or '/',
        query_string or '',
        headers_block,
        signed_headers,
        payload_digest,
    ])


def credential_scope(date_stamp: str, region: str, service: str) -> str:
    return '/'.join([date_stamp, region, service, SCOPE_TERMINATOR])


def string_to_sign(amz_date: str, scope: str, canonical: str) -> str:
    return '\n'.join([
        ALGORITHM,
        amz_date,
        scope,
        _sha256_hex(_encode(canonical, 'Canonical request')),
    ])


def derive_signing_key(secret_key: str, date_stamp: str, region: str, service: str) -> bytes:
    """Scope the secret key down to one day, region and service.

    Each HMAC output is the raw key of the next step, so the order is fixed.
    """
    k_date = _hmac_sha256(_encode(f'AWS4{secret_key}', 'Secret key'), _encode(date_stamp, 'Date stamp'))
    k_region = _hmac_sha256(k_date, _encode(region, 'Region'))
    k_service = _hmac_sha256(k_region, _encode(service, 'Service'))
    return _hmac_sha256(k_service, _encode(SCOPE_TERMINATOR, 'Scope terminator'))


def compute_signature(signing_key: bytes, to_sign: str) -> str:
    return _hmac_sha256(signing_key, _encode(to_sign, 'String to sign')).hex()


def authorization_header(access_key: str, scope: str, signed_headers: str, signature: str) -> str:
    return (
        f'{ALGORITHM} Credential={access_key}/{scope}, '
        f'SignedHeaders={signed_headers}, Signature={signature}'
    )


def sign(credentials: Credentials, request: RequestDescriptor, now: datetime) -> Headers:
    """Sign ``request`` and return its headers with the SigV4 headers merged in.

    Caller headers are kept. Content-Type, X-Amz-Content-Sha256, X-Amz-Date,
    Authorization and, for temporary credentials, X-Amz-Security-Token are
    added, replacing any caller header of the same name regardless of case.

    :raises ConfigurationError: a required credential or request field is
        missing. Raised before anything is hashed.
    :raises EncodingError: the body or a header cannot be encoded as UTF-8.
    """
    _validate(credentials, request)
    timestamps = make_timestamps(now)
    service = _service_name(credentials.service)
    caller_headers = request.headers or {}

    logger.debug(
        "Signing %s request for %s in scope %s/%s",
        request.method, request.host, credentials.region, service,
    )

    body_hash = payload_hash(request.body)
    mandatory = {
        'content-type': _header_value(request.content_type, 'content-type'),
        'host': _header_value(request.host, 'host'),
        'x-amz-content-sha256': body_hash,
        'x-amz-date': timestamps.amz_date,
    }
    if credentials.session_token:
        mandatory['x-amz-security-token'] = _header_value(credentials.session_token, 'x-amz-security-token')

    headers_block, signed_headers = canonical_headers(_headers_to_sign(caller_headers, mandatory))
    canonical = canonical_request(
        request.method.upper(),
        request.canonical_uri,
        request.query_string,
        headers_block,
        signed_headers,
        body_hash,
    )

    scope = credential_scope(timestamps.date_stamp, credentials.region, service)
    to_sign = string_to_sign(timestamps.amz_date, scope, canonical)
    signing_key = derive_signing_key(credentials.secret_key, timestamps.date_stamp, credentials.region, service)
    signature = compute_signature(signing_key, to_sign)

    logger.debug(
        "Signed headers %s, canonical request digest %s",
        signed_headers, to_sign.rsplit('\n', 1)[-1],
    )

    output: Headers = {
        'Content-Type': request.content_type,
        'X-Amz-Content-Sha256': body_hash,
        'X-Amz-Date': timestamps.amz_date,
        'Authorization': authorization_header(credentials.access_key, scope, signed_headers, signature),
    }
    if credentials.session_token:
        output['X-Amz-Security-Token'] = credentials.session_token

    replaced = {name.lower() for name in output}
    result: Headers = {
        name: value for name, value in caller_headers.items()
        if name.lower() not in replaced
    }
    result.update(output)
    return result


def _find_header(headers: Mapping[str, Any], name: str) -> Optional[Any]:
    for key, value in headers.items():
        if isinstance(key, str) and key.lower() == name:
            return value
    return None


class SigV4Signer:
    """Signs requests for one set of credentials, region and service.

    Usage:

        signer = SigV4Signer(access_key, secret_key, 'us-east-1', Service.DYNAMODB)
        headers = signer.create_headers('POST', 'https://dynamodb.us-east-1.amazonaws.com/',
                                        {'X-Amz-Target': 'DynamoDB_20120810.GetItem'}, body)
    """

    def __init__(
            self,
            access_key: str,
            secret_key: str,
            region: str,
            service: Union[str, Service],
            token: Optional[str] = None
    ) -> None:
        self.credentials = Credentials(access_key, secret_key, region, service, token)

    def sign(self, request: RequestDescriptor, now: datetime) -> Headers:
        return sign(self.credentials, request, now)

    def create_headers(
            self,
            method: str,
            url: str,
            headers: Optional[Headers] = None,
            body: Optional[Body] = None,
            content_type: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Headers:
        """Sign a request given as a full URL.

        The content type falls back to the caller's Content-Type header, then
        to ``application/x-www-form-urlencoded``. ``now`` defaults to the
        current UTC time.
        """
        headers = dict(headers or {})
        if content_type is None:
            content_type = _find_header(headers, 'content-type') or DEFAULT_CONTENT_TYPE
        request = RequestDescriptor.from_url(
            method, url, content_type, body, headers,
            normalize_path=_service_name(self.credentials.service) != Service.S3.value,
        )
        return sign(self.credentials, request, now or datetime.now(timezone.utc))
