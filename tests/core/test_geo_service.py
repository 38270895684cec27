# tests/core/test_geo_service.py
"""
Тесты для Geo-сервиса.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from src.common.errors import NotFoundError, UpstreamError
from src.core.geo.distance import calculate_distance
from src.core.geo.service import GeoService, Location


class TestCalculateDistance:
    """Тесты для формулы гаверсинуса."""

    def test_same_point(self) -> None:
        assert calculate_distance(50.45, 30.52, 50.45, 30.52) == 0.0

    def test_kyiv_lviv(self) -> None:
        """Проверяет расстояние Киев - Львов по прямой (~470 км)."""
        distance = calculate_distance(50.4501, 30.5234, 49.8397, 24.0297)

        assert 460 < distance < 480

    def test_symmetric(self) -> None:
        forward = calculate_distance(50.4501, 30.5234, 46.4825, 30.7233)
        backward = calculate_distance(46.4825, 30.7233, 50.4501, 30.5234)

        assert forward == pytest.approx(backward)


class TestGeoService:
    """Тесты для GeoService."""

    @pytest.fixture
    def geo_service(self) -> GeoService:
        """Создаёт сервис с тестовым API ключом."""
        return GeoService(api_key="test_api_key", language="uk")

    def test_init_without_api_key(self) -> None:
        """Проверяет инициализацию без API ключа (из конфига)."""
        with patch("src.config.settings") as mock_settings:
            mock_settings.google_maps.GOOGLE_MAPS_API_KEY = "config_api_key"
            mock_settings.google_maps.GEOCODING_LANGUAGE = "en"
            mock_settings.google_maps.GOOGLE_MAPS_TIMEOUT = 5.0

            service = GeoService()

            assert service._api_key == "config_api_key"
            assert service._language == "en"

    @pytest.mark.asyncio
    async def test_geocode_success(self, geo_service: GeoService) -> None:
        """Проверяет успешное геокодирование."""
        mock_response = MagicMock()
        mock_response.json.return_value = {
            "status": "OK",
            "results": [{
                "geometry": {"location": {"lat": 50.4501, "lng": 30.5234}},
                "formatted_address": "Київ, Україна",
            }],
        }

        with patch.object(geo_service._client, "get", new_callable=AsyncMock, return_value=mock_response) as mock_get:
            location = await geo_service.geocode("Kyiv")

        assert location == Location(latitude=50.4501, longitude=30.5234, address="Київ, Україна")
        params = mock_get.call_args[1]["params"]
        assert params["address"] == "Kyiv"
        assert params["key"] == "test_api_key"
        assert params["language"] == "uk"

    @pytest.mark.asyncio
    async def test_geocode_zero_results(self, geo_service: GeoService) -> None:
        """Проверяет NotFoundError для нераспознанного адреса."""
        mock_response = MagicMock()
        mock_response.json.return_value = {"status": "ZERO_RESULTS", "results": []}

        with patch.object(geo_service._client, "get", new_callable=AsyncMock, return_value=mock_response):
            with pytest.raises(NotFoundError):
                await geo_service.geocode("Nowhere 123")

    @pytest.mark.asyncio
    async def test_geocode_api_error_status(self, geo_service: GeoService) -> None:
        mock_response = MagicMock()
        mock_response.json.return_value = {"status": "REQUEST_DENIED"}

        with patch.object(geo_service._client, "get", new_callable=AsyncMock, return_value=mock_response):
            with pytest.raises(UpstreamError):
                await geo_service.geocode("Kyiv")

    @pytest.mark.asyncio
    async def test_geocode_network_error(self, geo_service: GeoService) -> None:
        """Проверяет UpstreamError при недоступности API."""
        with patch.object(
            geo_service._client, "get",
            new_callable=AsyncMock,
            side_effect=httpx.ConnectError("timeout"),
        ):
            with pytest.raises(UpstreamError):
                await geo_service.geocode("Kyiv")

    @pytest.mark.asyncio
    async def test_geocode_without_key(self) -> None:
        service = GeoService(api_key="")

        with pytest.raises(UpstreamError):
            await service.geocode("Kyiv")

    @pytest.mark.asyncio
    async def test_route_distance_success(self, geo_service: GeoService) -> None:
        """Проверяет перевод метров в км и секунд в минуты."""
        mock_response = MagicMock()
        mock_response.json.return_value = {
            "status": "OK",
            "rows": [{"elements": [{
                "status": "OK",
                "distance": {"value": 540300},
                "duration": {"value": 21630},
            }]}],
        }

        with patch.object(geo_service._client, "get", new_callable=AsyncMock, return_value=mock_response):
            route = await geo_service.route_distance("Kyiv", "Lviv")

        assert route.distance_km == 540.3
        assert route.duration_minutes == 360

    @pytest.mark.asyncio
    async def test_route_distance_not_found(self, geo_service: GeoService) -> None:
        mock_response = MagicMock()
        mock_response.json.return_value = {
            "status": "OK",
            "rows": [{"elements": [{"status": "ZERO_RESULTS"}]}],
        }

        with patch.object(geo_service._client, "get", new_callable=AsyncMock, return_value=mock_response):
            with pytest.raises(UpstreamError):
                await geo_service.route_distance("Kyiv", "Atlantis")

    @pytest.mark.asyncio
    async def test_close(self, geo_service: GeoService) -> None:
        """Проверяет закрытие HTTP клиента."""
        await geo_service.close()
