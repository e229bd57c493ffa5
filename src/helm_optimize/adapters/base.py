"""Common interface of the insight repositories."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Sequence, Tuple

from ..constants import ADAPTER_KEY, ADAPTER_SECRET
from ..secrets import SecretStore
from ..types import (
    Approval,
    ContainerIdentity,
    InsightNotFoundError,
    InsightUnavailableError,
    InvalidSpecError,
    ResourceBlock,
    SecretBag,
    TransportError,
)


class InsightAdapter(ABC):
    """
    Base class for insight repositories.

    Subclasses implement ``_fetch_insight``; ``get_insight`` turns every
    lookup failure except a credential problem into
    ``InsightUnavailableError`` so callers can fall back.
    """

    #: Value of ``adapter`` in the adapter secret
    name: str = ""
    #: Keys of the adapter secret owned by this adapter
    credential_keys: Sequence[str] = ()

    def __init__(self, secrets: SecretStore):
        self.secrets = secrets
        self.logger = logging.getLogger(self.__class__.__module__)

    @abstractmethod
    def initialize(self, reconfigure: bool = False) -> None:
        """
        Load and validate credentials, prompting when none are usable.

        Credentials are persisted only after they validate.

        Raises:
            CredError: If the credentials are rejected
        """

    def get_insight(
        self, cluster: str, namespace: str, kind: str, name: str, container: str
    ) -> Tuple[ResourceBlock, Approval]:
        """
        Return the resource block to apply and its approval state.

        Raises:
            InsightUnavailableError: If no usable insight exists
            CredError: If the backend rejects the stored credentials
        """
        identity = ContainerIdentity(cluster, namespace, kind, name, container)
        try:
            return self._fetch_insight(identity)
        except (InsightNotFoundError, InvalidSpecError, TransportError) as e:
            self.logger.debug("No insight for %s: %s", identity, e)
            raise InsightUnavailableError(str(e)) from e

    @abstractmethod
    def _fetch_insight(self, identity: ContainerIdentity) -> Tuple[ResourceBlock, Approval]:
        ...

    @abstractmethod
    def get_approval(
        self, cluster: str, namespace: str, kind: str, name: str, container: str
    ) -> Approval:
        """
        Return the approval state of a container's recommendation.

        Raises:
            InsightNotFoundError: If the repository has no record for the container
        """

    @abstractmethod
    def set_approval(
        self, approved: bool, cluster: str, namespace: str, kind: str, name: str, container: str
    ) -> None:
        """Approve or unapprove a container's recommendation."""

    def stored_settings(self) -> Optional[SecretBag]:
        """Return the adapter secret when it belongs to this adapter."""
        bag = self.secrets.read(ADAPTER_SECRET)
        if bag and bag.get(ADAPTER_KEY) == self.name:
            return bag
        return None

    def store_settings(self, values: Dict[str, str]) -> None:
        self.secrets.write(ADAPTER_SECRET, {ADAPTER_KEY: self.name, **values})

    def forget_settings(self, keys: Optional[Iterable[str]] = None) -> None:
        """Remove this adapter's keys from the adapter secret."""
        self.secrets.delete_keys(ADAPTER_SECRET, keys if keys is not None else self.credential_keys)
