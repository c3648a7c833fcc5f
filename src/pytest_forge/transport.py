"""HTTP transport.

The runner talks to the network through a single synchronous call,
`perform(request) -> response`. The default implementation wraps a
`httpx.Client`; tests swap in an `httpx.MockTransport` or any object
implementing the `Transport` protocol.
"""

from logging import getLogger
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from urllib.parse import urlsplit

import httpx
from pydantic import Field
from pydantic_core import PydanticSerializationError, to_jsonable_python

from pytest_forge.errors import TransportError
from pytest_forge.models import SchemaModel

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType
    from typing import Self

    from pytest_forge.values import RuntimeValue

logger = getLogger(__name__)

JSON_CONTENT_MARKER = 'json'


class HttpRequest(SchemaModel):
    """Fully resolved request, ready to be sent."""

    url: str = Field(
        title='Request URL',
        description='Absolute URL, or relative to the transport base.',
    )

    verb: str = Field(
        default='GET',
        title='HTTP method',
    )

    headers: dict[str, str] = Field(
        default_factory=dict,
        title='Request headers',
    )

    query: dict[str, Any] = Field(
        default_factory=dict,
        title='Query parameters',
    )

    body: Any = Field(
        default=None,
        title='Request body',
        description='Mappings and lists are sent as JSON, strings as is.',
    )

    def to_variable(self) -> dict[str, 'RuntimeValue']:
        """Plain mapping stored into Variables as `request`."""
        return self.model_dump()


class HttpResponse(SchemaModel):
    """Response captured from the transport."""

    status: int = Field(
        title='Status code',
    )

    headers: dict[str, str] = Field(
        default_factory=dict,
        title='Response headers',
    )

    body: Any = Field(
        default=None,
        title='Response body',
        description='Decoded JSON for JSON content types, text otherwise.',
    )

    text: str = Field(
        default='',
        title='Raw body',
        description='Undecoded response text.',
    )

    def to_variable(self) -> dict[str, 'RuntimeValue']:
        """Plain mapping stored into Variables as `response`."""
        return self.model_dump(include={'status', 'headers', 'body'})


@runtime_checkable
class Transport(Protocol):
    """Anything able to turn a request into a response."""

    def perform(self, request: HttpRequest) -> HttpResponse:
        ...  # pragma: no cover


def join_url(base_url: str, url: str) -> str:
    """Join a relative URL onto a base URL.

    Absolute URLs (with a scheme) and an empty base are returned as is.
    Exactly one slash separates the base from the path.
    """
    if not base_url or urlsplit(url).scheme:
        return url

    if not url:
        return base_url

    return f'{base_url.rstrip("/")}/{url.lstrip("/")}'


def merge_headers(defaults: 'Mapping[str, str]', headers: 'Mapping[str, RuntimeValue]') -> dict[str, str]:
    """Merge default headers under step headers.

    Names are compared case-insensitively; the step's spelling and value
    win.
    """
    merged = {name: str(value) for name, value in defaults.items()}

    for name, value in headers.items():
        for existing in [key for key in merged if key.lower() == str(name).lower()]:
            del merged[existing]
        merged[str(name)] = str(value)

    return merged


def decode_body(response: httpx.Response) -> 'RuntimeValue':
    """Decode a response body by its content type.

    JSON content types are parsed; an empty or malformed JSON body falls
    back to the raw text (`None` when empty).
    """
    if not response.content:
        return None

    content_type = response.headers.get('content-type', '')
    if JSON_CONTENT_MARKER in content_type.lower():
        try:
            return response.json()
        except ValueError:
            logger.warning('Response declared %s but body is not valid JSON', content_type)

    return response.text


class HttpxTransport:
    """Synchronous transport backed by `httpx.Client`.

    Attributes:
        client: Underlying HTTP client, created lazily.
    """

    def __init__(self, timeout: float = 30.0, *,
                 transport: httpx.BaseTransport | None = None,
                 follow_redirects: bool = True) -> None:
        """Initialize the transport.

        Args:
            timeout: Timeout in seconds for a single request.
            transport: Optional httpx transport, e.g. `httpx.MockTransport`.
            follow_redirects: Whether redirects are followed.
        """
        self.timeout = timeout
        self.transport = transport
        self.follow_redirects = follow_redirects
        self.client: httpx.Client | None = None

    def __enter__(self) -> 'Self':
        return self

    def __exit__(self, exc_type: type[BaseException] | None,
                 exc: BaseException | None, tb: 'TracebackType | None') -> None:
        self.close()

    def get_client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        if self.client is None or self.client.is_closed:
            self.client = httpx.Client(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=self.follow_redirects,
                transport=self.transport,
            )
        return self.client

    def close(self) -> None:
        """Close the HTTP client."""
        if self.client is not None and not self.client.is_closed:
            self.client.close()
        self.client = None

    def perform(self, request: HttpRequest) -> HttpResponse:
        """Send a request and capture the response.

        Raises:
            TransportError: If no response could be obtained.
        """
        kwargs: dict[str, Any] = {
            'method': request.verb,
            'url': request.url,
            'headers': request.headers,
        }

        try:
            if request.query:
                kwargs['params'] = to_jsonable_python(request.query)
            if isinstance(request.body, (dict, list)):
                kwargs['json'] = to_jsonable_python(request.body)

        except PydanticSerializationError as base:
            raise TransportError(f'{request.verb} {request.url} failed: {base}') from base

        if isinstance(request.body, bytes):
            kwargs['content'] = request.body
        elif request.body is not None and 'json' not in kwargs:
            kwargs['content'] = str(request.body).encode()

        logger.debug('%s %s', request.verb, request.url)

        try:
            response = self.get_client().request(**kwargs)

        except (httpx.HTTPError, httpx.InvalidURL) as base:
            raise TransportError(f'{request.verb} {request.url} failed: {base}') from base

        return HttpResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=decode_body(response),
            text=response.text,
        )
