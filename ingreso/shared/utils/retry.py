"""Utilidades para retry con backoff exponencial"""
import asyncio
import inspect
import logging
from typing import Any, Callable, Tuple, Type

logger = logging.getLogger(__name__)


async def retry_with_backoff(
    func: Callable,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,)
) -> Any:
    """
    Ejecutar función con retry y backoff exponencial

    Args:
        func: Función a ejecutar (async o sync)
        max_retries: Número máximo de reintentos
        initial_delay: Delay inicial en segundos
        max_delay: Delay máximo en segundos
        exponential_base: Base para cálculo exponencial
        exceptions: Excepciones que deben trigger retry

    Returns:
        Resultado de la función
    """
    delay = initial_delay

    for attempt in range(max_retries + 1):
        try:
            result = func()
            # Lambdas y partials que devuelven corutinas también cuentan
            if inspect.isawaitable(result):
                result = await result
            return result
        except exceptions as e:
            if attempt == max_retries:
                raise
            logger.warning(f"Intento {attempt + 1}/{max_retries + 1} falló: {e}. Reintentando en {delay:.1f}s")
            await asyncio.sleep(delay)
            delay = min(delay * exponential_base, max_delay)
