from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.security import authenticate_user_with_db, create_access_token
from app.db.session import get_db
from app.schemas.auth import LoginIn, TokenOut

router = APIRouter()


@router.post('/login', response_model=TokenOut)
def login(payload: LoginIn, db: Session = Depends(get_db)):
    user = authenticate_user_with_db(db, payload.username, payload.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={'error_code': 'UNAUTHORIZED', 'message': 'Credenciales inválidas', 'details': None},
        )
    access_token = create_access_token(
        {'sub': user['username'], 'role': user['role'], 'permissions': user['permissions']}
    )
    return TokenOut(access_token=access_token, role=user['role'], permissions=user['permissions'])
