from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_POSTGRES_SCHEMES = {"postgres", "postgresql", "postgresql+asyncpg", "postgresql+psycopg2"}
_SSL_DISABLED = {"0", "false", "no", "off", "disable"}
_SSL_MODES = {"require", "verify-ca", "verify-full"}


def _ssl_to_sslmode(query: dict[str, str]) -> dict[str, str]:
    """Translate ``?ssl=...`` (hosted Postgres style) into libpq ``sslmode``."""
    ssl_key = next((key for key in query if key.lower() == "ssl"), None)
    if ssl_key is None:
        return query
    value = query.pop(ssl_key).lower().strip()
    if "sslmode" not in query:
        if value in _SSL_DISABLED:
            query["sslmode"] = "disable"
        elif value in _SSL_MODES:
            query["sslmode"] = value
        else:
            query["sslmode"] = "require"
    return query


def normalize_database_url(url: str) -> str:
    """Point any Postgres URL at the async psycopg driver."""
    url = (url or "").strip()
    if not url:
        return url

    parts = urlsplit(url)
    if parts.scheme not in _POSTGRES_SCHEMES and parts.scheme != "postgresql+psycopg":
        return url

    query = _ssl_to_sslmode(dict(parse_qsl(parts.query, keep_blank_values=True)))
    return urlunsplit(
        ("postgresql+psycopg", parts.netloc, parts.path, urlencode(query, doseq=True), parts.fragment)
    )
