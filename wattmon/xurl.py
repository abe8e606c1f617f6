"""Parse and rebuild the simple URLs used by the uploaders."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

_DEFAULT_METHOD = "http://"


class UrlError(ValueError):
    """Raised when a URL cannot be parsed."""


@dataclass
class Url:
    """A URL split into the pieces that are concatenated to rebuild it.

    Each piece keeps its delimiter: ``method`` ends with ``://``, ``auth``
    ends with ``@``, ``port`` starts with ``:`` and ``query`` keeps whatever
    follows the path (normally starting with ``?``).
    """

    method: Optional[str] = None
    auth: Optional[str] = None
    domain: Optional[str] = None
    port: Optional[str] = None
    path: Optional[str] = None
    query: Optional[str] = None

    @classmethod
    def parse(cls, text: Optional[str]) -> "Url":
        """Split ``text`` into its parts, raising :class:`UrlError` if invalid."""
        if text is None:
            raise UrlError("no URL given")

        url = cls()
        rest = text

        scheme_end = rest.find("://")
        if scheme_end >= 0:
            url.method = rest[: scheme_end + 3]
            rest = rest[scheme_end + 3 :]
        else:
            url.method = _DEFAULT_METHOD

        at = rest.find("@")
        if at >= 0:
            url.auth = rest[: at + 1]
            rest = rest[at + 1 :]

        domain_end = next(
            (i for i, ch in enumerate(rest) if ch in ":/"), len(rest)
        )
        if domain_end == 0:
            raise UrlError(f"missing domain in {text!r}")
        url.domain = rest[:domain_end]
        rest = rest[domain_end:]

        if rest.startswith(":"):
            digits = 1
            while digits < len(rest) and "0" <= rest[digits] <= "9":
                digits += 1
            if digits == 1:
                raise UrlError(f"invalid port in {text!r}")
            url.port = rest[:digits]
            rest = rest[digits:]

        if rest.startswith("/"):
            path_end = rest.find("?")
            if path_end < 0:
                path_end = len(rest)
            if path_end > 1:
                path = rest[:path_end]
                url.path = path[:-1] if path.endswith("/") else path
            rest = rest[path_end:]

        if rest:
            url.query = rest
        return url

    def build(self) -> str:
        """Reassemble the URL from its parts."""
        parts = (self.method, self.auth, self.domain, self.port, self.path, self.query)
        return "".join(part for part in parts if part)

    def __str__(self) -> str:
        return self.build()