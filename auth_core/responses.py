from rest_framework.response import Response


def success(data=None, status=200, **extra):
    body = {"success": True, "data": data}
    body.update(extra)
    return Response(body, status=status)


def failure(error, status=400, code=None, details=None):
    body = {"success": False, "error": error}
    if code:
        body["code"] = code
    if details is not None:
        body["details"] = details
    return Response(body, status=status)


def first_error(errors) -> str:
    """Flatten DRF serializer errors into one human readable message."""
    if isinstance(errors, dict):
        for field, value in errors.items():
            message = first_error(value)
            if field in ("non_field_errors", "detail"):
                return message
            return f"{field}: {message}"
    if isinstance(errors, (list, tuple)) and errors:
        return first_error(errors[0])
    return str(errors)


def validation_failure(serializer):
    return failure(first_error(serializer.errors), status=400, code="VALIDATION_ERROR")
