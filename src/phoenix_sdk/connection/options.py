"""
Per-call request options.

Options are passed explicitly to every operation and never persist between calls.
Fields set on per-call options are layered over the transport defaults, so a
call that only changes the timeout still goes through the default endpoint.
"""

from typing import Self

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_TIMEOUT = 30.0
GATEWAY_ENDPOINT = "hbasephoenix/"


class RequestOptions(BaseModel):
    """
    Options for a single exchange with the query server.

    Attributes:
        alternative_endpoint: Path segment appended to the base URL, used by
            cluster gateways to route to a specific query server instance
            (e.g. ``"hbasephoenix0/"`` for the one on worker node 0)
        timeout: Seconds to wait for the exchange
        headers: Extra HTTP headers for this exchange
    """

    model_config = ConfigDict(frozen=True)

    alternative_endpoint: str | None = None
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("alternative_endpoint")
    @classmethod
    def _normalize_endpoint(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip().strip("/")
        if not value:
            return None
        if "?" in value or "#" in value or "://" in value:
            raise ValueError(f"Alternative endpoint must be a path segment, got '{value}'")
        return f"{value}/"

    @classmethod
    def gateway_defaults(cls, alternative_endpoint: str = GATEWAY_ENDPOINT, **kwargs: object) -> Self:
        """
        Options for clusters reached through a gateway.

        Requests sent to ``hbasephoenix/`` are load balanced by the gateway;
        ``hbasephoenix<N>/`` pins them to the query server on worker node N.
        """
        return cls(alternative_endpoint=alternative_endpoint, **kwargs)  # type: ignore[arg-type]

    def with_endpoint(self, alternative_endpoint: str | None) -> Self:
        """Copy of these options routed to another endpoint."""
        endpoint = type(self)(alternative_endpoint=alternative_endpoint).alternative_endpoint
        return self.model_copy(update={"alternative_endpoint": endpoint})

    def merged_over(self, defaults: "RequestOptions") -> "RequestOptions":
        """
        Layer the fields explicitly set on these options over ``defaults``.

        Headers are combined, with these options winning on conflicts.
        """
        update = self.model_dump(exclude_unset=True)
        if "headers" in update:
            update["headers"] = {**defaults.headers, **self.headers}
        return defaults.model_copy(update=update)
