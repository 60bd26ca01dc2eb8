"""Domain models for HTTP requests and responses.

RequestDescriptor and ResponseEnvelope are immutable values. Anything that
needs a patched request (new Authorization header, normalised query string)
produces a modified copy instead of mutating the caller's descriptor.
"""

import json
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union
from urllib.parse import parse_qsl, quote, unquote_plus, urlencode, urlsplit, urlunsplit

from .common import RAW_JSON_PARAM, RAW_JSON_VALUE, HttpMethod, MediaType

# Form bodies are mappings, everything else is sent as-is
Body = Union[None, str, bytes, Mapping[str, str]]

HeaderInput = Union[Mapping[str, str], Iterable[Tuple[str, str]], None]


class Headers(Mapping[str, str]):
    """Immutable, case-insensitive header mapping.

    Keeps the spelling a header name was first given with. Setting an
    existing header replaces its value.
    """

    __slots__ = ("_items",)

    def __init__(self, data: HeaderInput = None):
        items: Dict[str, Tuple[str, str]] = {}
        pairs = data.items() if isinstance(data, Mapping) else (data or ())
        for name, value in pairs:
            key = name.lower()
            original = items[key][0] if key in items else name
            items[key] = (original, str(value))
        self._items = items

    def __getitem__(self, name: str) -> str:
        if not isinstance(name, str):
            raise KeyError(name)
        return self._items[name.lower()][1]

    def __iter__(self) -> Iterator[str]:
        return (original for original, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mapping):
            return NotImplemented
        other_headers = other if isinstance(other, Headers) else Headers(other)
        return self._lowered() == other_headers._lowered()

    def __hash__(self) -> int:
        return hash(frozenset(self._lowered().items()))

    def __repr__(self) -> str:
        return f"Headers({dict(self.items())!r})"

    def _lowered(self) -> Dict[str, str]:
        return {key: value for key, (_, value) in self._items.items()}

    def with_header(self, name: str, value: str) -> "Headers":
        """Returns a copy with `name` set to `value`."""
        return Headers(list(self.items()) + [(name, value)])

    def without(self, name: str) -> "Headers":
        """Returns a copy with `name` removed."""
        return Headers((k, v) for k, v in self.items() if k.lower() != name.lower())


def normalize_media_type(content_type: Optional[str]) -> Optional[MediaType]:
    """Lowercases a content type and strips its parameters.

    'Application/JSON; charset=UTF-8' -> 'application/json'
    """
    if not content_type:
        return None
    media_type = content_type.split(";", 1)[0].strip().lower()
    return MediaType(media_type) if media_type else None


@dataclass(frozen=True)
class RequestDescriptor:
    """An outgoing request. Immutable once built."""
    url: str
    method: HttpMethod = HttpMethod("GET")
    headers: Headers = field(default_factory=Headers)
    body: Body = None
    raw_json: bool = True # Ask the API for unescaped JSON

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", HttpMethod(self.method.upper()))
        if not isinstance(self.headers, Headers):
            object.__setattr__(self, "headers", Headers(self.headers))
        if isinstance(self.body, Mapping) and not isinstance(self.body, MappingProxyType):
            object.__setattr__(self, "body", MappingProxyType(dict(self.body)))

    def with_header(self, name: str, value: str) -> "RequestDescriptor":
        return replace(self, headers=self.headers.with_header(name, value))

    def with_url(self, url: str) -> "RequestDescriptor":
        return replace(self, url=url)

    def query_values(self, name: str) -> List[str]:
        """All values given for query parameter `name`, in order."""
        pairs = parse_qsl(urlsplit(self.url).query, keep_blank_values=True)
        return [value for key, value in pairs if key == name]

    def new_builder(self) -> "RequestBuilder":
        """Returns a builder seeded with this descriptor."""
        builder = RequestBuilder().url(self.url).method(self.method, self.body).raw_json(self.raw_json)
        for name, value in self.headers.items():
            builder.header(name, value)
        return builder


def normalize_raw_json(request: RequestDescriptor) -> RequestDescriptor:
    """Makes sure a raw-mode request carries raw_json=1 exactly once.

    Duplicate or conflicting raw_json values are removed before the
    parameter is set. Requests already in normal form are returned as-is,
    so applying this twice is the same as applying it once.
    """
    if not request.raw_json:
        return request
    if request.query_values(RAW_JSON_PARAM) == [RAW_JSON_VALUE]:
        return request

    parts = urlsplit(request.url)
    # Other parameters are kept byte for byte, only raw_json segments are dropped
    segments = [
        segment
        for segment in parts.query.split("&")
        if segment and unquote_plus(segment.partition("=")[0]) != RAW_JSON_PARAM
    ]
    segments.append(f"{RAW_JSON_PARAM}={RAW_JSON_VALUE}")
    return request.with_url(urlunsplit(parts._replace(query="&".join(segments))))


class RequestBuilder:
    """Fluent builder for RequestDescriptor.

    Example:
        request = (RequestBuilder()
                   .host("oauth.reddit.com")
                   .path("/r/{}/about", "python")
                   .query({"limit": "10"})
                   .build())
    """

    def __init__(self):
        self._scheme = "https"
        self._host: Optional[str] = None
        self._path = ""
        self._query: List[Tuple[str, str]] = []
        self._headers = Headers()
        self._method = HttpMethod("GET")
        self._body: Body = None
        self._raw_json = True

    def url(self, url: str) -> "RequestBuilder":
        """Replaces scheme, host, path and query with those of `url`."""
        parts = urlsplit(url)
        if not parts.scheme or not parts.netloc:
            raise ValueError(f"Not an absolute URL: {url!r}")
        self._scheme = parts.scheme
        self._host = parts.netloc
        self._path = parts.path
        self._query = parse_qsl(parts.query, keep_blank_values=True)
        return self

    def secure(self, secure: bool = True) -> "RequestBuilder":
        self._scheme = "https" if secure else "http"
        return self

    def host(self, host: str) -> "RequestBuilder":
        self._host = host
        return self

    def path(self, template: str, *args: Any) -> "RequestBuilder":
        """Sets the path, URL-encoding each arg into a '{}' placeholder."""
        pieces = template.split("{}")
        if len(pieces) - 1 != len(args):
            raise ValueError(f"Path {template!r} expects {len(pieces) - 1} arguments, got {len(args)}")
        path = pieces[0]
        for arg, piece in zip(args, pieces[1:]):
            path += quote(str(arg), safe="") + piece
        self._path = path if path.startswith("/") else "/" + path
        return self

    def query(self, params: Mapping[str, Optional[str]]) -> "RequestBuilder":
        """Appends query parameters. None values are skipped."""
        self._query.extend((key, str(value)) for key, value in params.items() if value is not None)
        return self

    def header(self, name: str, value: str) -> "RequestBuilder":
        self._headers = self._headers.with_header(name, value)
        return self

    def method(self, method: str, body: Body = None) -> "RequestBuilder":
        self._method = HttpMethod(method.upper())
        self._body = body
        return self

    def get(self) -> "RequestBuilder":
        return self.method("GET")

    def post(self, form: Optional[Mapping[str, Optional[str]]] = None) -> "RequestBuilder":
        return self.method("POST", _drop_none(form))

    def put(self, form: Optional[Mapping[str, Optional[str]]] = None) -> "RequestBuilder":
        return self.method("PUT", _drop_none(form))

    def patch(self, form: Optional[Mapping[str, Optional[str]]] = None) -> "RequestBuilder":
        return self.method("PATCH", _drop_none(form))

    def delete(self, form: Optional[Mapping[str, Optional[str]]] = None) -> "RequestBuilder":
        return self.method("DELETE", _drop_none(form) if form is not None else None)

    def raw_json(self, raw_json: bool = True) -> "RequestBuilder":
        self._raw_json = raw_json
        return self

    def build(self) -> RequestDescriptor:
        if not self._host:
            raise ValueError("No host or URL specified")
        url = urlunsplit((self._scheme, self._host, self._path, urlencode(self._query), ""))
        return RequestDescriptor(
            url=url,
            method=self._method,
            headers=self._headers,
            body=self._body,
            raw_json=self._raw_json,
        )


def _drop_none(form: Optional[Mapping[str, Optional[str]]]) -> Dict[str, str]:
    return {key: value for key, value in (form or {}).items() if value is not None}


@dataclass(frozen=True)
class ResponseEnvelope:
    """A completed HTTP response. Read-only once produced by the transport."""
    status_code: int
    headers: Headers = field(default_factory=Headers)
    body: str = ""
    content_type: Optional[str] = None
    request: Optional[RequestDescriptor] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.headers, Headers):
            object.__setattr__(self, "headers", Headers(self.headers))
        if self.content_type is None and "content-type" in self.headers:
            object.__setattr__(self, "content_type", self.headers["content-type"])

    @property
    def successful(self) -> bool:
        return 200 <= self.status_code <= 299

    @property
    def media_type(self) -> Optional[MediaType]:
        return normalize_media_type(self.content_type)

    def json(self) -> Any:
        """Decodes the body as JSON.

        Raises:
            ValueError: If the body is not valid JSON.
        """
        return json.loads(self.body)
