# Overview: Flask API routes for barcode validation and generation.

# backend/devtrack/routes/barcodes.py
"""
Barcode routes. Pure functions over the configured format table; nothing
here touches the database.
"""
from flask import Blueprint, request

from ..decorators import require_actor
from ..errors import RuleViolation
from ..services import barcode_service

barcodes_bp = Blueprint("barcodes", __name__, url_prefix="/api/barcodes")


@barcodes_bp.get("/formats")
@require_actor
def formats():
    return {"formats": barcode_service.supported_formats()}


@barcodes_bp.post("/validate")
@require_actor
def validate():
    """
    Request body:
    {
        "barcode": str,
        "format": str (optional, default "AUTO")
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        matched = barcode_service.validate_format(data.get("barcode"), data.get("format") or barcode_service.AUTO)
    except RuleViolation as e:
        return {"valid": False, **e.to_dict()}, e.status_code
    return {"valid": True, "format": matched}


@barcodes_bp.post("/detect")
@require_actor
def detect():
    data = request.get_json(silent=True) or {}
    try:
        matched = barcode_service.detect_format(data.get("barcode"))
    except RuleViolation as e:
        return e.to_dict(), e.status_code
    return {"format": matched}


@barcodes_bp.post("/suggest")
@require_actor
def suggest():
    """
    Request body:
    {
        "part_number": str,
        "format": str (optional, default "CODE_128")
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        barcode = barcode_service.generate_suggested(data.get("part_number"), data.get("format") or "CODE_128")
    except RuleViolation as e:
        return e.to_dict(), e.status_code
    return {"barcode": barcode}


@barcodes_bp.post("/scan-quality")
@require_actor
def scan_quality():
    """Request body: {"barcode": str, "confidence": int}"""
    data = request.get_json(silent=True) or {}
    confidence = data.get("confidence", 100)
    if not isinstance(confidence, int) or isinstance(confidence, bool):
        return {"error": "confidence must be an integer"}, 400
    try:
        barcode_service.validate_scanning_quality(confidence, len(data.get("barcode") or ""))
    except RuleViolation as e:
        return {"acceptable": False, **e.to_dict()}, e.status_code
    return {"acceptable": True}
