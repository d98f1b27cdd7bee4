from fastapi import HTTPException, status


class NotFound(HTTPException):
    def __init__(self, resource: str, resource_id=None):
        msg = f'{resource} not found'
        if resource_id is not None:
            msg = f'{resource} {resource_id} not found'
        super().__init__(status.HTTP_404_NOT_FOUND, msg, None)


class PreconditionFailed(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status.HTTP_422_UNPROCESSABLE_ENTITY, detail, None)


class Conflict(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status.HTTP_409_CONFLICT, detail, None)


class StoreFailure(HTTPException):
    def __init__(self, detail=None):
        msg = 'An error occurred when accessing the database.'
        if detail:
            msg = f'{msg} Error detail: {detail}'
        super().__init__(status.HTTP_500_INTERNAL_SERVER_ERROR, msg, None)
