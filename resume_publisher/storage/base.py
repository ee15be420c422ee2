from abc import ABC, abstractmethod
from datetime import datetime


class BaseObjectStore(ABC):
    """Contract for the object store holding uploaded resume files."""

    @abstractmethod
    def sign_put(self, path: str) -> str:
        """Return a presigned URL the browser can PUT the file to."""

    @abstractmethod
    def sign_get(self, path: str) -> str:
        """Return a short-lived presigned URL the extraction service can GET."""

    @abstractmethod
    def copy(self, src: str, dst: str) -> None:
        """Copy an object within the bucket.

        Raises:
            ObjectStoreError: if the store is unreachable or the source is missing.
        """

    @abstractmethod
    def delete(self, path: str) -> None:
        """Delete an object. Deleting a missing object is not an error."""

    @abstractmethod
    def list_older_than(self, prefix: str, cutoff: datetime) -> list[str]:
        """Keys under ``prefix`` last modified before ``cutoff``."""
