"""Interface for credential persistence.

The medium and format are the adapter's business. The core only loads on
initialization, saves after login/refresh, and clears on logout or a failed
refresh.
"""

import abc

from ..models.credentials import CredentialBundle


class TokenStore(abc.ABC):

    @abc.abstractmethod
    def load(self) -> CredentialBundle:
        """Returns the persisted bundle, or an empty bundle when none is stored."""
        pass

    @abc.abstractmethod
    def save(self, credentials: CredentialBundle) -> None:
        pass

    @abc.abstractmethod
    def clear(self) -> None:
        pass
