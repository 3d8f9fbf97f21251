# campushare_app/blueprints/folders.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint, request, jsonify, g

from ..decorators import login_required
from ..services import folders as folder_service

bp = Blueprint("folders", __name__, url_prefix="/api/folders")


@bp.route("", methods=["GET"])
@login_required
def list_folders():
    if request.args.get("tree") == "true":
        return jsonify({"success": True, "data": {"folders": folder_service.tree(g.user.id)}})
    rows = folder_service.list_folders(g.user.id, request.args.get("parentId"))
    return jsonify({"success": True, "data": {"folders": [f.to_dict() for f in rows]}})


@bp.route("/<int:folder_id>", methods=["GET"])
@login_required
def get_folder(folder_id):
    folder = folder_service.get_folder(folder_id, g.user.id)
    return jsonify({"success": True, "data": folder_service.folder_contents(folder)})


@bp.route("", methods=["POST"])
@login_required
def create():
    data = request.get_json(silent=True) or {}
    folder = folder_service.create_folder(g.user.id, data.get("name"), data.get("parentId"), data.get("color"))
    return jsonify({"success": True, "message": "Folder created successfully", "data": {"folder": folder.to_dict()}}), 201


@bp.route("/<int:folder_id>", methods=["PUT"])
@login_required
def update(folder_id):
    data = request.get_json(silent=True) or {}
    kwargs = {"name": data.get("name"), "color": data.get("color")}
    if "parentId" in data:
        kwargs["parent_id"] = data.get("parentId")
    folder = folder_service.update_folder(folder_id, g.user.id, **kwargs)
    return jsonify({"success": True, "message": "Folder updated", "data": {"folder": folder.to_dict()}})


@bp.route("/<int:folder_id>", methods=["DELETE"])
@login_required
def delete(folder_id):
    keep = request.args.get("keepFiles") == "true"
    result = folder_service.delete_folder(folder_id, g.user.id, keep_files=keep)
    return jsonify({"success": True, "message": "Folder deleted successfully", "data": result})
