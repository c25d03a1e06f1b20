PASSTHROUGH_PREFIXES = ("http://", "https://", "blob:", "data:")


def resolve_asset_url(path: str | None, base_url: str) -> str:
    """Turn a stored asset reference into an absolute URL.

    Absolute, blob and data references are returned unchanged. Anything else is
    treated as a path on the asset host; filesystem-style paths are cut down to
    their ``/uploads/...`` suffix first.
    """
    if not path:
        return ""
    if path.startswith(PASSTHROUGH_PREFIXES):
        return path

    normalized = path.replace("\\", "/")
    uploads_index = normalized.find("/uploads/")
    if uploads_index != -1:
        normalized = normalized[uploads_index:]
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    return f"{base_url.rstrip('/')}{normalized}"
