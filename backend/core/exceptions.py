from typing import Optional

from fastapi import HTTPException, status


def not_found_exception(resource: str = "Recurso", detail: Optional[str] = None) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=detail or f"{resource} não encontrado",
    )


def bad_request_exception(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=detail,
    )
