from datetime import timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from app.api.users.schemas import UserRole
from app.core.config import settings
from app.core.logger import logger
from app.core.utils import current_time


class Token(BaseModel):
    access_token: str
    token_type: str


class TokenData(BaseModel):
    user_id: int
    email: str
    role: str

    @property
    def is_host(self) -> bool:
        return self.role == UserRole.HOST.value

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


# Constants
ALGORITHM = 'HS256'

# System token used for internal and public (unauthenticated) operations
# user_id=0 represents a system-level operation rather than a real staff user
SYSTEM_TOKEN = TokenData(user_id=0, email='', role='system')

# OAuth2 scheme
oauth2_scheme = OAuth2PasswordBearer(tokenUrl='users/token')


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({'exp': current_time() + expires_delta})

    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


async def get_current_user(token: str = Depends(oauth2_scheme)) -> TokenData:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail='Could not validate credentials',
        headers={'WWW-Authenticate': 'Bearer'},
    )

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.error('Token has expired')
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Token has expired',
            headers={'WWW-Authenticate': 'Bearer'},
        )
    except JWTError as e:
        logger.error('Error decoding token: %s', str(e))
        raise credentials_exception

    user_id: int = payload.get('user_id')
    email: str = payload.get('email')
    role: str = payload.get('role')
    if user_id is None or email is None or role is None:
        logger.error('Invalid token payload: %s', payload)
        raise credentials_exception

    return TokenData(user_id=user_id, email=email, role=role)


def require_roles(*roles: UserRole):
    """Dependency factory restricting an endpoint to the given staff roles."""
    allowed = {r.value for r in roles}

    async def _dependency(
        current_user: TokenData = Depends(get_current_user),
    ) -> TokenData:
        if current_user.role not in allowed:
            logger.error(
                'User %s with role %s not allowed', current_user.user_id, current_user.role
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Not authorized to perform this action',
            )
        return current_user

    return _dependency
