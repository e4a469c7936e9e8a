"""
Credential token extraction for authorization callbacks.

Extractors are tried in priority order; the first one that finds a
non-empty value wins.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum, auto

from transferflow.core.errors import AuthorizationDenied, MissingCredential


class TokenKind(Enum):
    """Protocol family a credential token came from."""

    OAUTH2_CODE = auto()
    OAUTH1_VERIFIER = auto()
    FROB = auto()


@dataclass(frozen=True)
class TokenResult:
    """Tagged outcome of token extraction."""

    found: bool
    token: str | None = None
    kind: TokenKind | None = None

    @classmethod
    def not_found(cls) -> TokenResult:
        return cls(found=False)


Extractor = Callable[[Mapping[str, str]], TokenResult]


def _parameter_extractor(parameter: str, kind: TokenKind) -> Extractor:
    def extract(params: Mapping[str, str]) -> TokenResult:
        value = params.get(parameter)
        if value:
            return TokenResult(found=True, token=value, kind=kind)
        return TokenResult.not_found()

    extract.__name__ = f"extract_{parameter}"
    return extract


extract_oauth2_code = _parameter_extractor("code", TokenKind.OAUTH2_CODE)
extract_oauth1_verifier = _parameter_extractor("oauth_verifier", TokenKind.OAUTH1_VERIFIER)
extract_frob = _parameter_extractor("frob", TokenKind.FROB)

DEFAULT_EXTRACTORS: tuple[Extractor, ...] = (
    extract_oauth2_code,
    extract_oauth1_verifier,
    extract_frob,
)


def find_token(
    params: Mapping[str, str],
    extractors: tuple[Extractor, ...] = DEFAULT_EXTRACTORS,
) -> TokenResult:
    """Run extractors in order and return the first hit."""
    for extractor in extractors:
        result = extractor(params)
        if result.found:
            return result
    return TokenResult.not_found()


def extract_token(params: Mapping[str, str]) -> str:
    """Return the credential token from callback parameters.

    Raises:
        AuthorizationDenied: The service reported an ``error`` instead.
        MissingCredential: No recognizable token is present.
    """
    error = params.get("error")
    if error:
        raise AuthorizationDenied(error)

    result = find_token(params)
    if not result.found or result.token is None:
        raise MissingCredential()
    return result.token
