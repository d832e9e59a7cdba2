"""URL helpers shared by the request pipeline and the stream consumer."""


def build_url(base_url: str | None, url: str | None) -> str:
    """
    Join a base URL and a request path.

    Absolute URLs are returned unchanged. Exactly one slash separates the
    base from the path.
    """
    url = url or ""
    if url.startswith(("http://", "https://")) or not base_url:
        return url
    if not url:
        return base_url
    return f"{base_url.rstrip('/')}/{url.lstrip('/')}"
