from fastapi import HTTPException, status


class CodedHTTPException(HTTPException):
    """HTTPException carrying a machine-readable ``code`` for the error envelope."""

    def __init__(self, status_code: int, detail: str, *, code: str) -> None:
        super().__init__(status_code=status_code, detail=detail)
        self.code = code


def conflict(detail: str, *, code: str) -> CodedHTTPException:
    return CodedHTTPException(status.HTTP_409_CONFLICT, detail, code=code)
