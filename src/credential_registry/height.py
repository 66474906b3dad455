"""
Chain height providers.

The registry never reads a clock itself. It asks an injected provider,
any callable returning the current chain height as an int, both to stamp
new records and as the default height for validity checks.
"""

from __future__ import annotations

from typing import Callable

import httpx

from credential_registry.errors import HeightProviderError


HeightProvider = Callable[[], int]


class FixedHeight:
    """A height provider whose height only moves when told to."""

    def __init__(self, height: int = 0) -> None:
        if height < 0:
            raise ValueError(f"Chain height cannot be negative: {height}")
        self.height = height

    def __call__(self) -> int:
        return self.height

    def advance(self, blocks: int = 1) -> int:
        """Move the height forward and return the new height."""
        if blocks < 0:
            raise ValueError("Chain height cannot move backwards")
        self.height += blocks
        return self.height

    def __repr__(self) -> str:
        return f"FixedHeight({self.height})"


class StacksNodeHeight:
    """Reads the current tip height from a Stacks node's RPC API."""

    INFO_PATH = "/v2/info"

    def __init__(
        self,
        node_url: str,
        timeout: float = 30.0,
        verify_ssl: bool = True,
    ) -> None:
        """Initialize the provider.

        Args:
            node_url: Base URL of the node (e.g. https://api.hiro.so).
            timeout: HTTP request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
        """
        self.node_url = node_url.rstrip("/")
        self.timeout = timeout
        self.verify_ssl = verify_ssl

    def __call__(self) -> int:
        """Fetch the current chain height.

        Returns:
            The Stacks tip height, or the burn block height when the node
            does not report a Stacks tip.

        Raises:
            HeightProviderError: If the node cannot be reached or its
                response carries no usable height.
        """
        url = f"{self.node_url}{self.INFO_PATH}"

        try:
            with httpx.Client(timeout=self.timeout, verify=self.verify_ssl) as client:
                response = client.get(url, headers={"Accept": "application/json"})
                response.raise_for_status()
                info = response.json()

        except httpx.HTTPStatusError as e:
            raise HeightProviderError(
                f"HTTP error fetching chain info from {url}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise HeightProviderError(f"Network error fetching chain info: {e}") from e
        except ValueError as e:
            raise HeightProviderError(f"Invalid JSON in chain info from {url}") from e

        if not isinstance(info, dict):
            raise HeightProviderError(f"Unexpected chain info payload from {url}")

        height = info.get("stacks_tip_height")
        if height is None:
            height = info.get("burn_block_height")
        if isinstance(height, bool) or not isinstance(height, int) or height < 0:
            raise HeightProviderError(f"No valid chain height in response from {url}")

        return height
