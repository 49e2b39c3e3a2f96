from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user

from database import get_db
from services.designs import create_design, list_designs, get_owned_design, delete_design
from services.errors import ValidationError
from utils.uploads import read_upload

designs_bp = Blueprint('designs', __name__, url_prefix='/api/designs')


@designs_bp.route("", methods=["GET"])
@login_required
def index():
    designs = list_designs(get_db(), current_user)
    return jsonify({"success": True, "designs": [d.to_dict() for d in designs]})


@designs_bp.route("", methods=["POST"])
@login_required
def create():
    """
    JSON body with an image data URL, or multipart with an 'image' file
    and the design attributes as form fields.
    """
    image_bytes = None
    if request.files:
        try:
            image_bytes = read_upload(request.files.get('image'))
        except ValueError as e:
            raise ValidationError(str(e))
        payload = request.form.to_dict()
    else:
        payload = request.get_json(silent=True) or {}

    design = create_design(get_db(), current_user, payload, image_bytes=image_bytes)
    return jsonify({"success": True, "design": design.to_dict()}), 201


@designs_bp.route("/<design_id>", methods=["GET"])
@login_required
def show(design_id):
    design = get_owned_design(get_db(), current_user, design_id)
    return jsonify({"success": True, "design": design.to_dict()})


@designs_bp.route("/<design_id>", methods=["DELETE"])
@login_required
def destroy(design_id):
    delete_design(get_db(), current_user, design_id)
    return jsonify({"success": True})
