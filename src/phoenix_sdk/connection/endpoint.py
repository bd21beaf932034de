"""Target URL resolution for query server requests."""

from .options import RequestOptions


class EndpointResolver:
    """
    Computes ``<base>/<alternative-segment?>`` for each request.

    Usage:
        resolver = EndpointResolver("https://cluster.example.net")
        resolver.resolve(RequestOptions(alternative_endpoint="hbasephoenix0"))
        # "https://cluster.example.net/hbasephoenix0/"
    """

    def __init__(self, base_url: str):
        if not base_url.startswith(("http://", "https://")):
            raise ValueError(f"Base URL must be http(s), got '{base_url}'")
        self.base_url = base_url.rstrip("/")

    def resolve(self, options: RequestOptions | None = None) -> str:
        segment = options.alternative_endpoint if options else None
        if segment:
            return f"{self.base_url}/{segment}"
        return f"{self.base_url}/"
