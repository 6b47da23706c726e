from typing import Callable, List, Optional, Sequence

from .token_store import TokenStore, parse_credentials

TokenSource = Callable[[str], Optional[str]]


class TokenSelector:
    """
    Picks the first configured credential that is not exhausted today.

    There is no cursor: repeated calls return the same credential until it is
    marked exhausted, so retries always go to the earliest available one.
    """

    def __init__(self, store: TokenStore, token_source: TokenSource):
        self.store = store
        self.token_source = token_source

    def credentials(self, provider: str) -> List[str]:
        """Read the provider's credential list fresh from configuration."""
        return parse_credentials(self.token_source(provider))

    async def next(
        self, provider: str, credentials: Optional[Sequence[str]] = None
    ) -> Optional[str]:
        candidates = self.credentials(provider) if credentials is None else credentials
        if not candidates:
            return None
        record = await self.store.load(provider)
        for credential in candidates:
            if credential not in record.exhausted:
                return credential
        return None
