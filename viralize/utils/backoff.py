"""
Sistema de retry y rate limiting para APIs externas.
Una sola política de reintentos compartida por imágenes y narración.
"""

import asyncio
import logging
import random
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

logger = logging.getLogger(__name__)

T = TypeVar("T")


class APIError(Exception):
    """Error genérico de API."""
    pass


class TransientUpstreamError(APIError):
    """Fallo transitorio (red, 5xx). Se reintenta."""
    pass


class RateLimitError(TransientUpstreamError):
    """Error cuando se excede el rate limit (429 / cuota agotada)."""

    def __init__(self, message: str = "rate limit", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class AuthenticationError(APIError):
    """Error de autenticación con la API."""
    pass


def raise_for_upstream_status(response: httpx.Response) -> None:
    """
    Traduce códigos HTTP a la taxonomía de errores.

    429 -> RateLimitError, 5xx -> TransientUpstreamError,
    401/403 -> AuthenticationError, otros 4xx -> APIError.
    """
    status = response.status_code
    if status < 400:
        return
    detail = f"HTTP {status} en {response.request.url}"
    if status == 429:
        retry_after = response.headers.get("retry-after")
        try:
            wait = float(retry_after) if retry_after else None
        except ValueError:
            wait = None
        raise RateLimitError(detail, retry_after=wait)
    if status >= 500:
        raise TransientUpstreamError(detail)
    if status in (401, 403):
        raise AuthenticationError(detail)
    raise APIError(detail)


class wait_for_upstream(wait_base):
    """Backoff exponencial; los 429 esperan una ventana larga con jitter."""

    def __init__(self, policy: "RetryPolicy"):
        self.policy = policy
        self._exponential = wait_exponential(
            multiplier=policy.multiplier, min=policy.min_wait, max=policy.max_wait
        )

    def __call__(self, retry_state) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RateLimitError):
            if exc.retry_after is not None:
                return min(exc.retry_after, self.policy.max_rate_limit_wait)
            jitter = random.uniform(0, self.policy.rate_limit_jitter)
            return self.policy.rate_limit_wait + jitter
        return self._exponential(retry_state)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Política de reintentos: intentos máximos, backoff y qué errores se reintentan.

    Args:
        max_attempts: Número máximo de intentos (incluye el primero)
        min_wait: Espera mínima entre intentos (segundos)
        max_wait: Espera máxima del backoff exponencial (segundos)
        multiplier: Multiplicador del backoff exponencial
        rate_limit_wait: Espera base tras un 429
        rate_limit_jitter: Jitter aleatorio sumado a rate_limit_wait
        retry_on: Tupla de excepciones reintentables
    """
    max_attempts: int = 5
    min_wait: float = 1.0
    max_wait: float = 30.0
    multiplier: float = 2.0
    rate_limit_wait: float = 15.0
    rate_limit_jitter: float = 5.0
    max_rate_limit_wait: float = 60.0
    retry_on: Tuple[Type[BaseException], ...] = (TransientUpstreamError, httpx.TransportError)
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False, repr=False)

    def retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_for_upstream(self),
            retry=retry_if_exception_type(self.retry_on),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self.sleep,
            reraise=True,
        )

    async def call(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Ejecuta `fn` con reintentos. Relanza la última excepción si se agotan."""
        return await self.retrying()(fn, *args, **kwargs)


class RateLimiter:
    """
    Rate limiter por endpoint para controlar peticiones a APIs.

    Combina un intervalo mínimo entre llamadas con un límite por período.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """Inicializa el rate limiter."""
        self._clock = clock
        self._window_start: dict[str, float] = {}
        self._last_call: dict[str, float] = {}
        self._request_counts: dict[str, int] = defaultdict(int)
        self._lock = asyncio.Lock()
        self._limits: dict[str, dict] = {
            # Límites por defecto
            "default": {"requests": 60, "period_seconds": 60, "min_interval": 0.0},
            "pexels": {"requests": 200, "period_seconds": 3600, "min_interval": 0.0},  # 200/hora
            "tts": {"requests": 10, "period_seconds": 60, "min_interval": 2.0},
        }

    def set_limit(
        self,
        endpoint: str,
        requests: int,
        period_seconds: float,
        min_interval: float = 0.0,
    ) -> None:
        """
        Configura un límite para un endpoint.

        Args:
            endpoint: Nombre del endpoint
            requests: Número máximo de peticiones por período
            period_seconds: Período en segundos
            min_interval: Separación mínima entre dos llamadas consecutivas
        """
        self._limits[endpoint] = {
            "requests": requests,
            "period_seconds": period_seconds,
            "min_interval": min_interval,
        }

    def _get_limit(self, endpoint: str) -> dict:
        """Obtiene el límite para un endpoint (o el default)."""
        return self._limits.get(endpoint, self._limits["default"])

    async def wait_if_needed(self, endpoint: str) -> float:
        """
        Espera si es necesario para cumplir con el rate limit.

        Returns:
            Tiempo esperado en segundos
        """
        async with self._lock:
            limit = self._get_limit(endpoint)
            waited = 0.0
            now = self._clock()

            window_start = self._window_start.get(endpoint)
            if window_start is None or now - window_start >= limit["period_seconds"]:
                self._window_start[endpoint] = now
                self._request_counts[endpoint] = 0
            elif self._request_counts[endpoint] >= limit["requests"]:
                wait_time = limit["period_seconds"] - (now - window_start)
                logger.info(f"Rate limit alcanzado para {endpoint}. Esperando {wait_time:.1f}s")
                await asyncio.sleep(wait_time)
                waited += wait_time
                now = self._clock()
                self._window_start[endpoint] = now
                self._request_counts[endpoint] = 0

            last = self._last_call.get(endpoint)
            if last is not None and limit["min_interval"] > 0:
                gap = limit["min_interval"] - (now - last)
                if gap > 0:
                    await asyncio.sleep(gap)
                    waited += gap
                    now = self._clock()

            self._last_call[endpoint] = now
            self._request_counts[endpoint] += 1
            return waited

    def get_remaining(self, endpoint: str) -> int:
        """Obtiene el número de peticiones restantes en la ventana actual."""
        limit = self._get_limit(endpoint)
        return max(0, limit["requests"] - self._request_counts[endpoint])

    def reset(self, endpoint: Optional[str] = None) -> None:
        """Resetea los contadores (de un endpoint o de todos)."""
        if endpoint:
            self._request_counts[endpoint] = 0
            self._window_start.pop(endpoint, None)
            self._last_call.pop(endpoint, None)
        else:
            self._request_counts.clear()
            self._window_start.clear()
            self._last_call.clear()
