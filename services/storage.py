# services/storage.py
"""
Local upload storage for images (nominee photos, catalog images, partner logos)
"""

import logging
import uuid
from pathlib import Path
from typing import Optional

from flask import current_app
from PIL import Image, ImageOps, UnidentifiedImageError
from werkzeug.datastructures import FileStorage
from werkzeug.local import LocalProxy
from werkzeug.security import safe_join
from werkzeug.utils import secure_filename

from core.exceptions import StorageError

logger = logging.getLogger(__name__)

PUBLIC_PREFIX = '/uploads/'


class UploadStorage:
    """Stores uploaded images under UPLOAD_FOLDER and serves them from /uploads/"""

    def __init__(self, app=None):
        self.root: Optional[Path] = None
        self.allowed_extensions = set()
        self.max_dimension = 1600
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.root = Path(app.config['UPLOAD_FOLDER'])
        self.root.mkdir(parents=True, exist_ok=True)
        self.allowed_extensions = set(app.config.get('UPLOAD_EXTENSIONS', ()))
        self.max_dimension = app.config.get('IMAGE_MAX_DIMENSION', 1600)
        app.extensions['upload_storage'] = self

    def folder(self, name: str) -> Path:
        path = self.root / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    def save_image(self, upload: FileStorage, folder: str) -> str:
        """
        Validate, down-scale and store an uploaded image

        Returns:
            Public URL path of the stored file, e.g. /uploads/awards/awards-<hex>.jpg

        Raises:
            StorageError: wrong extension or undecodable image
        """
        filename = secure_filename(upload.filename or '')
        extension = Path(filename).suffix.lower()
        if extension not in self.allowed_extensions:
            allowed = ', '.join(sorted(ext.lstrip('.') for ext in self.allowed_extensions))
            raise StorageError(f"Only image files are allowed ({allowed})")

        try:
            Image.open(upload.stream).verify()
            upload.stream.seek(0)
            image = Image.open(upload.stream)
            image_format = image.format
            image = ImageOps.exif_transpose(image)
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            logger.warning(f"Rejected upload {filename}: {e}")
            raise StorageError("Uploaded file is not a valid image")

        image.thumbnail((self.max_dimension, self.max_dimension))
        if image_format == 'JPEG' and image.mode not in ('RGB', 'L'):
            image = image.convert('RGB')

        stored_name = f"{folder}-{uuid.uuid4().hex}{extension}"
        target = self.folder(folder) / stored_name
        image.save(target, format=image_format)
        logger.info(f"Stored upload {filename} as {folder}/{stored_name}")
        return f"{PUBLIC_PREFIX}{folder}/{stored_name}"

    def resolve(self, url: str) -> Optional[Path]:
        """Map a public /uploads/ URL to a path inside the upload root"""
        if not url or not url.startswith(PUBLIC_PREFIX):
            return None
        joined = safe_join(str(self.root), url[len(PUBLIC_PREFIX):])
        return Path(joined) if joined else None

    def delete(self, url: Optional[str]) -> bool:
        """
        Remove a locally stored file

        Remote URLs (CDN-hosted images) are left to the host's own lifecycle.
        """
        if not url:
            return False
        if url.startswith(('http://', 'https://')):
            logger.info(f"Skipping cleanup of remote file {url}")
            return False

        path = self.resolve(url)
        if path is None or not path.is_file():
            logger.warning(f"Upload {url} not found during cleanup")
            return False

        path.unlink()
        logger.info(f"Deleted upload {url}")
        return True


def _current_storage() -> UploadStorage:
    return current_app.extensions['upload_storage']


storage = LocalProxy(_current_storage)
