"""
Request body parsing for engagement endpoints.

Browsers report views and engagement either with fetch() (JSON) or with
navigator.sendBeacon() on page unload, which posts form data or a text/plain
JSON blob. All of them end up as the same pydantic model.
"""

import json
import logging
from typing import Any, TypeVar

from fastapi import Request
from pydantic import BaseModel

from churchsite.exceptions import ValidationError

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")

ModelT = TypeVar("ModelT", bound=BaseModel)


async def read_payload(request: Request, lenient: bool = False) -> dict[str, Any]:
    """
    Decode the request body into a plain dict.

    Args:
        request: Incoming request
        lenient: Treat an unparseable body as empty instead of rejecting it

    Raises:
        ValidationError: body is not a JSON object (unless lenient)
    """
    content_type = request.headers.get("content-type", "").lower()

    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        # Blank form fields mean "not sent"; uploaded files are ignored.
        return {key: value for key, value in form.items() if isinstance(value, str) and value != ""}

    body = await request.body()
    if not body.strip():
        return {}

    try:
        data = json.loads(body)
    except ValueError as e:
        if lenient:
            logger.debug(f"Ignoring unparseable body on {request.url.path}")
            return {}
        raise ValidationError("Request body is not valid JSON") from e

    if not isinstance(data, dict):
        if lenient:
            return {}
        raise ValidationError("Request body must be a JSON object")
    return data


async def parse_payload(request: Request, model: type[ModelT], lenient: bool = False) -> ModelT:
    """Read the body and validate it; pydantic errors surface as 400 responses."""
    data = await read_payload(request, lenient=lenient)
    return model.model_validate(data)
