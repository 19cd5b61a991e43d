"""Firma HMAC-SHA256 de payloads de entradas"""
import hashlib
import hmac
from typing import Iterable, Optional, Sequence, Tuple, Union

from ingreso.shared.errors import ConfigurationError

FIELD_SEPARATOR = "|"

SecretLike = Union[str, bytes]


def _to_bytes(secret: SecretLike) -> bytes:
    if isinstance(secret, str):
        secret = secret.encode("utf-8")
    if not secret:
        raise ConfigurationError("El secret de firma QR no puede estar vacío")
    return secret


def canonical_message(fields: Sequence[Optional[str]]) -> bytes:
    """
    Serializar la tupla ordenada de campos que cubre la firma.

    Cada campo va prefijado con su longitud ("5:E1-01"), así mover el
    separador entre dos campos produce un mensaje distinto. None se
    codifica como "-" y un string vacío como "0:".
    """
    parts = []
    for value in fields:
        if value is None:
            parts.append("-")
        else:
            parts.append(f"{len(value)}:{value}")
    return FIELD_SEPARATOR.join(parts).encode("utf-8")


class HmacSigner:
    """
    Sello de integridad determinista y con clave sobre una tupla de campos.

    `sign` usa siempre el secret actual. `verify` acepta además los secrets
    anteriores, lo que permite rotar el secret con una ventana de gracia
    durante un redeploy coordinado.
    """

    def __init__(self, secret: SecretLike, previous_secrets: Iterable[SecretLike] = ()):
        self._secret = _to_bytes(secret)
        self._previous: Tuple[bytes, ...] = tuple(_to_bytes(s) for s in previous_secrets)

    def __repr__(self) -> str:
        return f"HmacSigner(previous_secrets={len(self._previous)})"

    @staticmethod
    def _digest(secret: bytes, fields: Sequence[Optional[str]]) -> str:
        return hmac.new(secret, canonical_message(fields), hashlib.sha256).hexdigest()

    def sign(self, fields: Sequence[Optional[str]]) -> str:
        return self._digest(self._secret, fields)

    def verify(self, fields: Sequence[Optional[str]], signature: str) -> bool:
        """Comparación en tiempo constante contra el secret actual y los anteriores"""
        if not isinstance(signature, str) or not signature:
            return False
        matched = False
        for secret in (self._secret, *self._previous):
            expected = self._digest(secret, fields)
            # Sin cortocircuito: se evalúan todos los secrets
            matched |= hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8"))
        return matched
