"""
Saved wristband designs.

The canvas is rendered in the browser; the backend receives the
rasterized preview (multipart upload or data URL) plus the design
attributes, and keeps them for re-ordering.
"""
import logging
from urllib.parse import urlparse

from botocore.exceptions import BotoCoreError, ClientError

from constants import DEFAULT_WRISTBAND_TYPE, DEFAULT_WRISTBAND_COLOR, WRISTBAND_TYPES
from models import Design, new_id
from services.errors import ValidationError, NotFoundError, PermissionDenied, ConflictError, UpstreamError
from utils.uploads import decode_data_url, save_design_image, delete_design_image

logger = logging.getLogger(__name__)

MAX_CUSTOM_TEXT = 200


def _design_attrs(payload):
    wristband_type = (payload.get('wristband_type') or payload.get('wristbandType') or DEFAULT_WRISTBAND_TYPE)
    wristband_type = wristband_type.strip().lower()
    if wristband_type not in WRISTBAND_TYPES:
        raise ValidationError(f"Unknown wristband type: {wristband_type}")

    custom_text = (payload.get('custom_text') or payload.get('customText') or "").strip()
    if len(custom_text) > MAX_CUSTOM_TEXT:
        raise ValidationError(f"Custom text is limited to {MAX_CUSTOM_TEXT} characters")

    text_position = payload.get('text_position') or payload.get('textPosition')
    if text_position is not None and not isinstance(text_position, dict):
        raise ValidationError("textPosition must be an object")

    return {
        'wristband_type': wristband_type,
        'wristband_color': payload.get('wristband_color') or payload.get('wristbandColor') or DEFAULT_WRISTBAND_COLOR,
        'custom_text': custom_text or None,
        'text_color': payload.get('text_color') or payload.get('textColor'),
        'text_position': text_position,
    }


def _is_http_url(value):
    parsed = urlparse(value or "")
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def create_design(db, user, payload, image_bytes=None, commit=True):
    """
    Store a design.

    The image comes from `image_bytes` (multipart), or payload
    'image_data' / 'design_url' as a data URL, or an existing http(s)
    'image_url' which is kept as-is.
    """
    attrs = _design_attrs(payload)
    design = Design(id=new_id(), user_id=user.id, **attrs)

    data_url = payload.get('image_data') or payload.get('imageData') or payload.get('design_url')
    external_url = payload.get('image_url') or payload.get('imageUrl')
    if data_url and not data_url.startswith("data:"):
        external_url = external_url or data_url

    try:
        if image_bytes is None and data_url and data_url.startswith("data:"):
            image_bytes = decode_data_url(data_url)
    except ValueError as e:
        raise ValidationError(str(e))

    if image_bytes is not None:
        try:
            design.image_key, design.image_url = save_design_image(image_bytes, user.id, design.id)
        except ValueError as e:
            raise ValidationError(str(e))
        except (OSError, BotoCoreError, ClientError) as e:
            logger.error(f"[Designs] Storage write failed for design {design.id}: {e}")
            raise UpstreamError("Could not store design image")
    elif external_url:
        if not _is_http_url(external_url):
            raise ValidationError("imageUrl must be an http(s) URL")
        design.image_key = None
        design.image_url = external_url
    else:
        raise ValidationError("Design image is required")

    design.save(db=db, commit=commit)
    logger.info(f"[Designs] Created design {design.id} for user {user.id}")
    return design


def list_designs(db, user):
    rows = db.execute(
        "SELECT * FROM designs WHERE user_id = %s ORDER BY created_at DESC, id",
        (user.id,)
    ).fetchall()
    return [Design.from_row(r) for r in rows]


def get_owned_design(db, user, design_id):
    design = Design.get(design_id, db=db)
    if not design:
        raise NotFoundError("Design not found")
    if design.user_id != user.id and not user.is_admin:
        raise PermissionDenied("Not your design")
    return design


def delete_design(db, user, design_id):
    """
    Delete a design and its stored image.

    Designs referenced by an order are kept: the order and its supplier
    still need the artwork.
    """
    design = get_owned_design(db, user, design_id)

    in_use = db.execute(
        "SELECT COUNT(*) AS n FROM orders WHERE design_id = %s", (design.id,)
    ).fetchone()
    if in_use['n']:
        raise ConflictError("Design is used by an order and cannot be deleted")

    db.execute("DELETE FROM designs WHERE id = %s", (design.id,))
    db.commit()

    delete_design_image(getattr(design, 'image_key', None))
    logger.info(f"[Designs] Deleted design {design.id}")
