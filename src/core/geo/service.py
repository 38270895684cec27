# src/core/geo/service.py
"""
Geo-сервис для работы с Google Maps API.
Геокодирование адресов и расчёт расстояния/времени в пути.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from src.common.constants import TypeMsg
from src.common.errors import NotFoundError, UpstreamError
from src.common.logger import log_error, log_info


@dataclass
class Location:
    """Геолокация."""
    latitude: float
    longitude: float
    address: str = ""


@dataclass
class RouteInfo:
    """Расстояние и время в пути по дорогам."""
    distance_km: float
    duration_minutes: int


class GeoService:
    """
    Сервис для работы с геоданными через Google Maps API.

    Реализует:
    - Прямое геокодирование (адрес -> координаты)
    - Расстояние и время в пути между двумя адресами (Distance Matrix)
    """

    GEOCODING_URL = "https://maps.googleapis.com/maps/api/geocode/json"
    DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"

    def __init__(
        self,
        api_key: str | None = None,
        language: str = "uk",
        timeout: float = 10.0,
    ) -> None:
        """
        Args:
            api_key: API ключ Google Maps (берётся из конфига если None)
            language: Язык ответов
            timeout: Таймаут HTTP запросов (секунды)
        """
        if api_key is None:
            from src.config import settings
            api_key = settings.google_maps.GOOGLE_MAPS_API_KEY
            language = settings.google_maps.GEOCODING_LANGUAGE
            timeout = settings.google_maps.GOOGLE_MAPS_TIMEOUT

        self._api_key = api_key
        self._language = language
        self._client = httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Закрывает HTTP клиент."""
        await self._client.aclose()

    async def _get_json(self, url: str, params: dict[str, str]) -> dict:
        """GET запрос к Google Maps с ключом и языком."""
        if not self._api_key:
            await log_error("Google Maps API key не настроен")
            raise UpstreamError("Геосервис не настроен")

        try:
            response = await self._client.get(
                url,
                params={**params, "key": self._api_key, "language": self._language},
            )
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            await log_error(f"Ошибка запроса к Google Maps: {e}")
            raise UpstreamError("Геосервис недоступен") from e

    async def geocode(self, address: str) -> Location:
        """
        Прямое геокодирование: адрес -> координаты.

        Raises:
            NotFoundError: адрес не распознан
            UpstreamError: ошибка геосервиса
        """
        data = await self._get_json(self.GEOCODING_URL, {"address": address})

        status = data.get("status")
        if status in ("ZERO_RESULTS", "NOT_FOUND") or (status == "OK" and not data.get("results")):
            await log_info(f"Геокодирование не дало результатов для: {address}", type_msg=TypeMsg.WARNING)
            raise NotFoundError(f"Не удалось определить координаты адреса: {address}")
        if status != "OK":
            await log_error(f"Geocoding API вернул статус {status} для: {address}")
            raise UpstreamError(f"Ошибка геокодирования: {status}")

        result = data["results"][0]
        location = result["geometry"]["location"]

        return Location(
            latitude=location["lat"],
            longitude=location["lng"],
            address=result.get("formatted_address", address),
        )

    async def route_distance(self, origin: str, destination: str) -> RouteInfo:
        """
        Расстояние (км) и время в пути (минуты) на автомобиле.

        Raises:
            UpstreamError: геосервис не вернул маршрут
        """
        data = await self._get_json(
            self.DISTANCE_MATRIX_URL,
            {"origins": origin, "destinations": destination, "mode": "driving"},
        )

        try:
            element = data["rows"][0]["elements"][0]
        except (KeyError, IndexError):
            element = {}

        if data.get("status") != "OK" or element.get("status") != "OK":
            await log_error(
                f"Маршрут не найден: {origin} -> {destination} "
                f"(status={data.get('status')}, element={element.get('status')})"
            )
            raise UpstreamError("Не удалось рассчитать расстояние и время в пути")

        return RouteInfo(
            distance_km=element["distance"]["value"] / 1000,
            duration_minutes=round(element["duration"]["value"] / 60),
        )
