"""Transport core: one authenticated request/response cycle per call.

Errors are raised to the caller, never logged here. Each outgoing request is
logged once at DEBUG with the endpoint and parameter names only; the API key
never reaches the log.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx
from pydantic import ValidationError

from .config import settings
from .errors import ApiError, InvalidArgument, MalformedResponse, TransportError
from .models import Credentials, HttpMethod, RequestSpec, ResponseEnvelope


def _errno_of(exc: BaseException) -> Optional[int]:
    """Walk the exception chain for the first OS-level error number."""
    seen: Optional[BaseException] = exc
    while seen is not None:
        errno = getattr(seen, "errno", None)
        if isinstance(errno, int):
            return errno
        seen = seen.__cause__ or seen.__context__
    return None


def _validate_user_agent(user_agent: Any) -> str:
    user_agent = str(user_agent)
    if not user_agent.isascii() or any(ord(c) < 32 or ord(c) == 127 for c in user_agent):
        raise InvalidArgument(f"User agent must be printable ASCII, got {user_agent!r}")
    return user_agent


def _validate_timeout(seconds: Any) -> int:
    if isinstance(seconds, bool) or not isinstance(seconds, int) or seconds <= 0:
        raise InvalidArgument(f"Timeout must be a positive number of seconds, got {seconds!r}")
    return seconds


class YmlpTransport:
    """Executes exactly one request/response cycle against the YMLP API.

    Credentials are fixed at construction. Timeout and user-agent suffix can be
    changed later and only affect subsequent calls.

    If an ``httpx.Client`` is injected it is reused for every call (and left
    open) and its own ``verify`` setting applies, so ``insecure_skip_verify``
    is rejected alongside it. Otherwise each call opens and closes its own
    client, verifying certificates unless ``insecure_skip_verify`` is set.
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        timeout: Optional[int] = None,
        user_agent: Optional[str] = None,
        insecure_skip_verify: Optional[bool] = None,
        follow_redirects: Optional[bool] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._credentials = credentials
        self._timeout = _validate_timeout(settings.timeout if timeout is None else timeout)
        if http_client is not None and insecure_skip_verify is not None:
            raise InvalidArgument(
                "insecure_skip_verify cannot be combined with http_client; configure verify on the injected client"
            )
        self._user_agent = _validate_user_agent(settings.user_agent if user_agent is None else user_agent)
        self._verify = not (
            settings.insecure_skip_verify if insecure_skip_verify is None else insecure_skip_verify
        )
        self._follow_redirects = (
            settings.follow_redirects if follow_redirects is None else follow_redirects
        )
        self._client = http_client

        self._log = logging.getLogger(__name__ + ".YmlpTransport")

    # ---------------------------------------------------------------
    # Configuration
    # ---------------------------------------------------------------

    @property
    def timeout(self) -> int:
        return self._timeout

    def set_timeout(self, seconds: int) -> None:
        """Stop waiting for the service after *seconds*; reported as TransportError."""
        self._timeout = _validate_timeout(seconds)

    @property
    def user_agent(self) -> str:
        """Full header value: ``"<client-id>/<version> <your-agent>"``."""
        base = f"{settings.client_id}/{settings.version}"
        suffix = self._user_agent.strip()
        return f"{base} {suffix}" if suffix else base

    def set_user_agent(self, user_agent: str) -> None:
        """Set your own agent, ideally ``<app-name>/<app-version>``; ours is prepended."""
        self._user_agent = _validate_user_agent(user_agent)

    # ---------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------

    def call(
        self,
        path: str,
        parameters: Optional[Mapping[str, Any]] = None,
        method: str | HttpMethod = HttpMethod.GET,
        expect_structured_response: bool = True,
    ) -> Any:
        """Call endpoint *path* (e.g. ``"Contacts.Add"``) and unwrap its ``Output``.

        Raises InvalidArgument, TransportError, MalformedResponse or ApiError.
        With ``expect_structured_response=False`` the raw body is returned.
        """
        spec = self._build_spec(path, parameters, method, expect_structured_response)
        request_kwargs = self._request_kwargs(spec)

        self._log.debug(
            "%s %s params=%s",
            spec.method.value,
            spec.path,
            sorted(k for k in spec.parameters if k != "Key"),
        )

        response = self._send(spec.method, request_kwargs)

        if not spec.expect_structured_response:
            return response.text
        return self._unwrap(response)

    # ---------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------

    def _build_spec(
        self,
        path: str,
        parameters: Optional[Mapping[str, Any]],
        method: str | HttpMethod,
        expect_structured_response: bool,
    ) -> RequestSpec:
        if method not in (HttpMethod.GET, HttpMethod.POST):
            raise InvalidArgument(f"Invalid method {method!r}, expected GET or POST")
        if not isinstance(path, str) or not path.strip():
            raise InvalidArgument("Endpoint path must be a non-empty string")

        try:
            spec = RequestSpec(
                path=path.strip().lstrip("/"),
                method=HttpMethod(method),
                parameters=parameters,
                expect_structured_response=expect_structured_response,
            )
        except ValidationError as exc:
            raise InvalidArgument(f"Invalid request for {path}: {exc}") from exc
        # Authentication and output format always win over caller values.
        spec.parameters.update(
            {
                "Key": self._credentials.api_key.get_secret_value(),
                "Username": self._credentials.username,
                "Output": "JSON",
            }
        )
        return spec

    def _request_kwargs(self, spec: RequestSpec) -> dict[str, Any]:
        url = f"{settings.api_url.rstrip('/')}/{spec.path}"
        kwargs: dict[str, Any] = {
            "headers": {"User-Agent": self.user_agent},
            "timeout": httpx.Timeout(self._timeout),
        }

        if spec.method is HttpMethod.POST:
            kwargs["data"] = spec.parameters
        elif spec.parameters:
            separator = "&" if "?" in url else "?"
            url += separator + str(httpx.QueryParams(spec.parameters))

        kwargs["url"] = httpx.URL(url).copy_with(port=settings.api_port)
        return kwargs

    def _send(self, method: HttpMethod, request_kwargs: dict[str, Any]) -> httpx.Response:
        try:
            if self._client is not None:
                return self._dispatch(self._client, method, request_kwargs)
            with httpx.Client(verify=self._verify) as client:
                return self._dispatch(client, method, request_kwargs)
        except httpx.RequestError as exc:
            raise TransportError(str(exc) or exc.__class__.__name__, _errno_of(exc)) from exc

    def _dispatch(
        self, client: httpx.Client, method: HttpMethod, request_kwargs: dict[str, Any]
    ) -> httpx.Response:
        request = client.build_request(method.value, **request_kwargs)
        return client.send(request, follow_redirects=self._follow_redirects)

    @staticmethod
    def _unwrap(response: httpx.Response) -> Any:
        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponse("Invalid JSON-response", response.status_code) from exc

        if not isinstance(payload, dict):
            raise MalformedResponse(
                f"Expected a JSON object, got {type(payload).__name__}", response.status_code
            )

        try:
            envelope = ResponseEnvelope.model_validate(payload)
        except ValidationError as exc:
            raise MalformedResponse(f"Invalid response envelope: {exc}", response.status_code) from exc

        if envelope.is_error:
            raise ApiError(envelope.error_message(), envelope.code)
        return envelope.output
