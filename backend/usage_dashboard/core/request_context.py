"""Framework-neutral view of the parts of a request the auth layer reads."""

from collections.abc import Mapping
from dataclasses import dataclass, field

from starlette.requests import Request

from usage_dashboard.core.client_ip import get_client_ip

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


@dataclass(frozen=True)
class RequestContext:
    """Method, cookies, headers and query of one inbound request.

    Header names are stored lower-cased.
    """

    method: str
    path: str = "/"
    headers: Mapping[str, str] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)
    client_ip: str = "unknown"

    @classmethod
    def from_request(cls, request: Request, trusted_proxy_ips: str = "") -> "RequestContext":
        return cls(
            method=request.method.upper(),
            path=request.url.path,
            headers={k.lower(): v for k, v in request.headers.items()},
            cookies=dict(request.cookies),
            query=dict(request.query_params),
            client_ip=get_client_ip(request, trusted_proxy_ips),
        )

    @property
    def is_safe_method(self) -> bool:
        return self.method.upper() in SAFE_METHODS

    @property
    def user_agent(self) -> str | None:
        return self.headers.get("user-agent")

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    def cookie(self, name: str) -> str | None:
        return self.cookies.get(name)
