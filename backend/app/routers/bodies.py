"""JSON body dependencies for secret-guarded routes.

A plain pydantic body parameter is decoded before any dependency runs, so a
malformed body would answer 400 ahead of the 401 from a route-level secret
check. These dependencies read the body themselves and therefore run after
the route's ``dependencies=[...]`` guards.
"""
from typing import Type, TypeVar

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError

Model = TypeVar("Model", bound=BaseModel)


def parsed_body(model: Type[Model]):
    async def dependency(request: Request) -> Model:
        try:
            data = await request.json()
        except ValueError:
            raise RequestValidationError(
                [{"type": "json_invalid", "loc": ("body",), "msg": "JSON decode error", "input": {}}]
            )
        try:
            return model.model_validate(data)
        except ValidationError as e:
            errors = [{**err, "loc": ("body", *err["loc"])} for err in e.errors(include_url=False)]
            raise RequestValidationError(errors, body=data)

    return dependency
