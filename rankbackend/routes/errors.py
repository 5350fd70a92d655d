from fastapi import HTTPException, status
from rankbackend.services.errors import (
    RankPaperError, NotFoundError, EligibilityDenied, StateError,
    PreconditionError, AnswerKeyIntegrityError, InvalidInputError
)


def http_error(exc: RankPaperError) -> HTTPException:
    """Translate a domain error into the HTTPException the API returns"""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, EligibilityDenied):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, StateError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, PreconditionError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "missing": exc.missing}
        )
    if isinstance(exc, AnswerKeyIntegrityError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": str(exc), "question_ids": exc.question_ids}
        )
    if isinstance(exc, InvalidInputError):
        return HTTPException(status_code=422, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
