# deid_pipeline/engine/base.py

"""Client interface of the deidentification service."""

from abc import ABC, abstractmethod
from typing import Callable

from deid_pipeline.core.domain import DeidentifyContentRequest, DeidentifyContentResponse


class DeidentifyClient(ABC):
    """A connection to the deidentification service.

    Clients are acquired per call and must be closed afterwards; they can be
    used as context managers.
    """

    @abstractmethod
    def deidentify_content(
        self, request: DeidentifyContentRequest
    ) -> DeidentifyContentResponse:
        """Transforms the request's table according to its policy.

        Raises:
            RemoteCallError: If the service rejects or fails the request
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Releases the connection."""
        pass

    def __enter__(self) -> "DeidentifyClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


# Zero-argument callable returning a fresh client.
ClientFactory = Callable[[], DeidentifyClient]
