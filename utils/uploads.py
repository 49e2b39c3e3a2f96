"""
Design image upload handling.

Accepts a multipart FileStorage or a base64 data URL (what the design
studio canvas exports), validates the content with Pillow and stores a
re-encoded PNG through the configured storage backend.
"""
import io
import base64
import binascii
import logging

from PIL import Image, UnidentifiedImageError
from botocore.exceptions import BotoCoreError, ClientError
from werkzeug.utils import secure_filename

from constants import DESIGN_IMAGE_FORMATS, DESIGN_IMAGE_MAX_PIXELS, DESIGN_IMAGE_PREFIX
from utils.storage import get_storage

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'webp'}
MAX_FILE_SIZE = 16 * 1024 * 1024  # matches MAX_CONTENT_LENGTH


def allowed_file(filename):
    if not filename:
        return False
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def decode_data_url(data_url):
    """'data:image/png;base64,....' -> bytes"""
    if not isinstance(data_url, str) or not data_url.startswith("data:image/"):
        raise ValueError("Design image must be an image data URL")
    header, _, encoded = data_url.partition(",")
    if ";base64" not in header or not encoded:
        raise ValueError("Design image data URL must be base64 encoded")
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("Design image data URL is not valid base64")


def read_upload(file_storage):
    if not file_storage or not file_storage.filename:
        raise ValueError("No file provided")
    if not allowed_file(secure_filename(file_storage.filename)):
        raise ValueError(f"File type not allowed. Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}")
    return file_storage.read()


def normalize_design_image(image_bytes: bytes) -> bytes:
    """Validate image bytes and re-encode as PNG (drops metadata)."""
    if not image_bytes:
        raise ValueError("Empty image")
    if len(image_bytes) > MAX_FILE_SIZE:
        raise ValueError(f"File too large. Maximum size is 16MB, got {len(image_bytes) / 1024 / 1024:.1f}MB")

    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.verify()
        # verify() leaves the image unusable
        with Image.open(io.BytesIO(image_bytes)) as img:
            if img.format not in DESIGN_IMAGE_FORMATS:
                raise ValueError(f"Unsupported image format: {img.format}")
            width, height = img.size
            if width * height > DESIGN_IMAGE_MAX_PIXELS:
                raise ValueError(f"Image too large: {width}x{height}")
            img = img.convert("RGBA")
            output = io.BytesIO()
            img.save(output, format="PNG")
            return output.getvalue()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
        raise ValueError(f"Invalid image file: {e}")


def save_design_image(image_bytes: bytes, user_id, design_id):
    """
    Store a design preview. Returns (storage_key, public_url).
    """
    png = normalize_design_image(image_bytes)
    key = f"{DESIGN_IMAGE_PREFIX}/{secure_filename(str(user_id))}/{secure_filename(str(design_id))}.png"

    storage = get_storage()
    storage.put_file(png, key, content_type="image/png")
    logger.info(f"[Uploads] Stored design image {key} ({len(png)} bytes)")
    return key, storage.get_url(key)


def delete_design_image(key):
    if not key:
        return
    try:
        get_storage().delete(key)
    except (OSError, ValueError, BotoCoreError, ClientError) as e:
        logger.warning(f"[Uploads] Could not delete {key}: {e}")
