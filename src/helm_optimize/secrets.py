"""Persist plugin settings as Kubernetes secrets."""
from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional

from .kubectl import KubectlClient
from .types import SecretBag


class SecretStore:
    """
    Named string bags stored as generic secrets.

    Writes read the existing bag, merge, delete the secret and create it
    again with the merged map. Concurrent writers are last-writer-wins.
    """

    def __init__(self, kubectl: KubectlClient):
        self.kubectl = kubectl
        self.logger = logging.getLogger(__name__)

    def read(self, name: str) -> Optional[SecretBag]:
        """Return the decoded bag, or None when the secret is absent."""
        return self.kubectl.get_secret_data(name)

    def write(self, name: str, values: Mapping[str, str]) -> SecretBag:
        """
        Merge ``values`` into the bag; keys not in ``values`` are kept.

        Returns:
            The merged bag as written
        """
        merged = dict(self.read(name) or {})
        merged.update({key: str(value) for key, value in values.items()})
        self._replace(name, merged)
        return merged

    def delete_key(self, name: str, key: str) -> SecretBag:
        """Remove one key from the bag, keeping the others."""
        return self.delete_keys(name, [key])

    def delete_keys(self, name: str, keys: Iterable[str]) -> SecretBag:
        """Remove several keys from the bag in a single rewrite."""
        existing = self.read(name)
        if existing is None:
            return {}
        dropped = set(keys)
        remaining = {k: v for k, v in existing.items() if k not in dropped}
        self._replace(name, remaining)
        return remaining

    def delete(self, name: str) -> None:
        """Remove the whole bag."""
        self.kubectl.delete_secret(name)

    def _replace(self, name: str, values: SecretBag) -> None:
        self.logger.debug("Rewriting secret %s with keys %s", name, sorted(values))
        self.kubectl.delete_secret(name)
        if values:
            self.kubectl.create_secret(name, values)
