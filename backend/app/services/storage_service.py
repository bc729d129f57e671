import os
import uuid
from pathlib import Path
import logging
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)

EXTENSIONS = {
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
}

class StorageService:
    """
    A service class to handle file storage operations.

    Generated podcast audio is written under '<base_path>/podcasts' and
    served by the application from '/storage'. The rest of the application
    only relies on put(data, content_type) -> url, so a cloud bucket can
    replace the local directory without touching the pipeline.
    """

    def __init__(self, base_path: str = settings.STORAGE_PATH, base_url: str = settings.BASE_URL):
        """
        Initializes the StorageService.

        Args:
            base_path: The root directory for all storage operations.
            base_url: Public URL of the server that mounts '/storage'.
        """
        self.base_path = Path(base_path)
        self.base_url = base_url
        self.podcasts_dir = self.base_path / "podcasts"

        # Ensure the directory exists
        self.podcasts_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Storage initialized at base path: {self.base_path}")

    def put(self, data: bytes, content_type: str) -> str:
        """
        Stores a generated audio artifact and returns its public URL.

        Args:
            data: The audio bytes.
            content_type: MIME type of the data, e.g. 'audio/mpeg'.

        Returns:
            The full URL the file is served from.
        """
        extension = EXTENSIONS.get(content_type, "bin")
        filename = f"podcast_{uuid.uuid4().hex}.{extension}"
        file_path = self.get_podcast_path(filename)
        with file_path.open("wb") as f:
            f.write(data)
        logger.info(f"Saved podcast audio to: {file_path} ({len(data)} bytes)")
        return self.get_file_url(str(file_path.relative_to(self.base_path)))

    def get_file_url(self, relative_path: str) -> str:
        """
        Generates a full accessible URL for a stored file.

        Args:
            relative_path: The relative path of the file (from storage base)

        Returns:
            Full URL accessible via the web server
        """
        # Convert Windows path separators to forward slashes
        url_path = relative_path.replace('\\', '/').lstrip('/')

        # If the relative path starts with 'storage/', remove it as we add it in the full URL
        if url_path.startswith('storage/'):
            url_path = url_path[8:]

        base_url = self.base_url.rstrip('/')

        # Fix for missing port in BASE_URL if it's just http://localhost
        if base_url == "http://localhost":
            base_url = "http://localhost:8000"

        full_url = f"{base_url}/storage/{url_path}"
        logger.debug(f"Generated file URL for {relative_path} -> {full_url}")
        return full_url

    def get_podcast_path(self, podcast_filename: str) -> Path:
        """
        Gets the full Path object for a given podcast filename.
        """
        return self.podcasts_dir / Path(podcast_filename).name

    def delete_podcast_file(self, podcast_filename: str):
        """
        Deletes a podcast audio file from the storage.

        Args:
            podcast_filename: The name of the podcast file to delete.
        """
        file_path = self.get_podcast_path(podcast_filename)
        if file_path.exists() and file_path.is_file():
            try:
                os.remove(file_path)
                logger.info(f"Deleted podcast file: {file_path}")
            except OSError as e:
                logger.error(f"Error deleting podcast file {file_path}: {e}")
                raise RuntimeError(f"Could not delete podcast file: {e}")
        else:
            logger.warning(f"Attempted to delete non-existent podcast file: {file_path}")

    def delete_by_url(self, url: Optional[str]):
        """Deletes the podcast file behind a URL returned by put()."""
        if url:
            self.delete_podcast_file(url.split('/')[-1])


# Create a single instance of the service to be used as a dependency
storage_service = StorageService()

def get_storage_service():
    """
    Dependency function to provide the storage service instance.
    """
    return storage_service
