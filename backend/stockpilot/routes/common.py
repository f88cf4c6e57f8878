# Overview: Request parsing helpers shared by the API blueprints.

import base64
import binascii

from flask import request

from ..errors import MalformedRequestError, ValidationError


def read_json() -> dict:
    """
    JSON object body, or {} when the request has no body.

    Raises MalformedRequestError (400) for unparseable JSON or a non-object body.
    """
    if not request.get_data(cache=True):
        return {}
    data = request.get_json(silent=True)
    if data is None:
        raise MalformedRequestError("Request body must be valid JSON.", field_errors={"body": ["is not valid JSON"]})
    if not isinstance(data, dict):
        raise MalformedRequestError("Request body must be a JSON object.", field_errors={"body": ["must be an object"]})
    return data


def read_payload() -> dict:
    """Form fields for multipart requests (image uploads), JSON otherwise."""
    if request.mimetype == "multipart/form-data":
        return {key: value for key, value in request.form.items() if key not in ("images", "remove_image_ids")}
    return read_json()


def read_images(payload: dict) -> list:
    """
    Uploaded images as bytes.

    Multipart requests send files under "images"; JSON requests may send
    base64 strings (optionally as data URLs) in payload["images"].
    """
    images = [f.read() for f in request.files.getlist("images") if f and f.filename]

    encoded = payload.pop("images", None) or []
    if not isinstance(encoded, list):
        raise ValidationError(field_errors={"images": ["must be a list of base64 strings"]})
    for index, item in enumerate(encoded):
        if not isinstance(item, str):
            raise ValidationError(field_errors={f"images.{index}": ["must be a base64 string"]})
        if item.startswith("data:") and "," in item:
            item = item.split(",", 1)[1]
        try:
            images.append(base64.b64decode(item, validate=True))
        except (binascii.Error, ValueError):
            raise ValidationError(field_errors={f"images.{index}": ["is not valid base64"]})
    return images


def read_remove_image_ids(payload: dict) -> list:
    if request.mimetype == "multipart/form-data":
        return request.form.getlist("remove_image_ids")
    ids = payload.pop("remove_image_ids", None) or []
    if not isinstance(ids, list):
        raise ValidationError(field_errors={"remove_image_ids": ["must be a list"]})
    return ids


def query_filters(*names) -> dict:
    return {name: request.args.get(name) for name in names if request.args.get(name) not in (None, "")}


def flag(name: str, default: bool = False) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")
