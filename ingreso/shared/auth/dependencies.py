"""Dependencies de autenticación para FastAPI"""
from typing import Dict

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ingreso.shared.auth.jwt_handler import decode_token

VALIDATOR_ROLES = {'scanner', 'validator', 'admin'}

security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Dict:
    '''Obtener usuario actual desde token JWT'''
    payload = decode_token(credentials.credentials)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Token inválido o expirado',
            headers={'WWW-Authenticate': 'Bearer'},
        )

    user_id = payload.get('sub') or payload.get('user_id')
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Token inválido: falta user_id',
        )

    return {
        'user_id': user_id,
        'email': payload.get('email'),
        'role': payload.get('role') or payload.get('app_metadata', {}).get('role', 'user')
    }


async def get_current_validator(
    current_user: Dict = Depends(get_current_user)
) -> Dict:
    '''Verificar que el usuario pueda validar entradas'''
    if current_user.get('role') not in VALIDATOR_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Se requieren permisos de validador'
        )
    return current_user
