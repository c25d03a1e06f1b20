from pathlib import Path
from uuid import uuid4

from fastapi import UploadFile

from catalog_admin.core.config import get_settings
from catalog_admin.core.logging import get_logger

logger = get_logger(__name__)

# multipart field name -> (Category attribute, upload folder)
CATEGORY_ASSET_FIELDS: dict[str, tuple[str, str]] = {
    "icon": ("icon_url", "icons"),
    "image": ("image_url", "images"),
    "desktopBreadcrumb": ("desktop_breadcrumb_url", "breadcrumbs"),
    "mobileBreadcrumb": ("mobile_breadcrumb_url", "breadcrumbs"),
}


class UnsupportedAssetError(ValueError):
    """Raised when an uploaded file is not an image."""


class AssetStorage:
    """Writes category uploads below ``root`` and returns their public path."""

    def __init__(self, root: str | Path, public_prefix: str = "/uploads"):
        self.root = Path(root)
        self.public_prefix = public_prefix.rstrip("/")

    async def save(self, upload: UploadFile, field_name: str) -> str:
        _, folder = CATEGORY_ASSET_FIELDS[field_name]
        content_type = upload.content_type or ""
        if not content_type.startswith("image/"):
            raise UnsupportedAssetError(f"{field_name}: only image files are allowed")

        suffix = Path(upload.filename or "").suffix.lower()
        filename = f"{field_name}-{uuid4().hex}{suffix}"
        target_dir = self.root / "categories" / folder
        target_dir.mkdir(parents=True, exist_ok=True)
        content = await upload.read()
        (target_dir / filename).write_bytes(content)

        public_path = f"{self.public_prefix}/categories/{folder}/{filename}"
        logger.info("asset_stored", field=field_name, path=public_path, size=len(content))
        return public_path

    async def save_category_assets(
        self,
        uploads: dict[str, UploadFile | None],
    ) -> dict[str, str]:
        stored: dict[str, str] = {}
        for field_name, upload in uploads.items():
            if upload is None or not upload.filename:
                continue
            attribute, _ = CATEGORY_ASSET_FIELDS[field_name]
            stored[attribute] = await self.save(upload, field_name)
        return stored


def get_asset_storage() -> AssetStorage:
    return AssetStorage(get_settings().upload_dir)
