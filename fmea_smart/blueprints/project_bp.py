"""
FMEA Project Blueprint: registration of Master / Family / Part FMEAs.

Endpoints:
    GET    /api/fmea/projects[?id=<fmeaId>]   List (M → F → P, newest first)
    POST   /api/fmea/projects                 Create or update a registration
    DELETE /api/fmea/projects?fmeaId=<id>     Delete registration + worksheet data
"""

import logging

from flask import Blueprint, jsonify, request

from fmea_smart.blueprints import require_fmea_id
from fmea_smart.core.exceptions import ValidationError
from fmea_smart.services import project_service

logger = logging.getLogger(__name__)

project_bp = Blueprint("fmea_project", __name__, url_prefix="/api/fmea/projects")


@project_bp.route("", methods=["GET"])
def list_projects():
    projects = project_service.list_projects(request.args.get("id"))
    return jsonify({"success": True, "projects": projects}), 200


@project_bp.route("", methods=["POST"])
def save_project():
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError("Request body must be JSON")
    project = project_service.create_or_update_project(data)
    return jsonify({"success": True, "fmeaId": project.fmea_id, "project": project.to_dict()}), 200


@project_bp.route("", methods=["DELETE"])
def delete_project():
    return jsonify(project_service.delete_project(require_fmea_id())), 200
