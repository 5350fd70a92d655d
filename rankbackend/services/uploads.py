from abc import ABC, abstractmethod

from rankbackend.config import settings


class UploadResolver(ABC):
    """Turns a stored upload reference into something a reviewer can open."""

    @abstractmethod
    def resolve(self, storage_key: str) -> str:
        raise NotImplementedError


class PublicUrlResolver(UploadResolver):
    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")

    def resolve(self, storage_key: str) -> str:
        if storage_key.startswith(("http://", "https://")):
            return storage_key
        if not self.base_url:
            return storage_key
        return f"{self.base_url}/{storage_key.lstrip('/')}"


def get_upload_resolver() -> UploadResolver:
    return PublicUrlResolver(settings.UPLOAD_PUBLIC_BASE_URL)
