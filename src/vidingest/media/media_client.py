"""Media-services REST client (OData v3 over ``httpx``)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Sequence
from urllib.parse import quote

import httpx

from ..auth.token_provider import TokenProvider
from ..exceptions import AuthenticationError, ServiceRequestError
from .media_models import (
    AccessPermissions,
    AccessPolicy,
    Asset,
    AssetCreationOptions,
    AssetFile,
    Job,
    Locator,
    LocatorType,
    MediaProcessor,
    TaskSpec,
)

logger = logging.getLogger(__name__)

PROTOCOL_HEADERS = {
    "x-ms-version": "2.19",
    "DataServiceVersion": "3.0",
    "MaxDataServiceVersion": "3.0",
    "Accept": "application/json;odata=verbose",
    "Content-Type": "application/json;odata=verbose",
}

# Locators become valid slightly in the past to tolerate clock skew.
LOCATOR_START_SKEW = timedelta(minutes=5)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _entity_key(entity_set: str, entity_id: str) -> str:
    return f"{entity_set}('{quote(entity_id, safe='')}')"


def _odata_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _unwrap_entity(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    return payload.get("d", payload)


def _unwrap_results(payload: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    data = payload.get("d", payload)
    if isinstance(data, list):
        return data
    if "results" in data:
        return list(data["results"])
    return list(data.get("value") or [])


@dataclass(slots=True)
class MediaServicesClient:
    """Issue asset, access-grant and job requests against media services."""

    http: httpx.AsyncClient
    api_endpoint: str
    token_provider: TokenProvider
    clock: Callable[[], datetime] = field(default=_utcnow)
    log: logging.Logger = field(default_factory=lambda: logger)

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------
    async def create_asset(
        self,
        name: str,
        *,
        options: AssetCreationOptions = AssetCreationOptions.NONE,
        alternate_id: str | None = None,
    ) -> Asset:
        body: dict[str, Any] = {"Name": name, "Options": int(options)}
        if alternate_id:
            body["AlternateId"] = alternate_id
        data = await self._request("POST", "Assets", json=body, operation="create_asset")
        return Asset.from_payload(_unwrap_entity(data))

    async def list_assets_by_name(self, name: str) -> list[Asset]:
        data = await self._request(
            "GET",
            "Assets",
            params={"$filter": f"Name eq {_odata_literal(name)}"},
            operation="list_assets",
        )
        return [Asset.from_payload(item) for item in _unwrap_results(data)]

    async def update_asset(self, asset: Asset) -> None:
        body: dict[str, Any] = {"Name": asset.name}
        if asset.alternate_id:
            body["AlternateId"] = asset.alternate_id
        await self._request(
            "MERGE", _entity_key("Assets", asset.id), json=body, operation="update_asset"
        )

    def asset_uri(self, asset: Asset) -> str:
        return asset.uri or self._url(_entity_key("Assets", asset.id))

    # ------------------------------------------------------------------
    # Asset files
    # ------------------------------------------------------------------
    async def list_asset_files(self, asset_id: str) -> list[AssetFile]:
        data = await self._request(
            "GET", f"{_entity_key('Assets', asset_id)}/Files", operation="list_asset_files"
        )
        return [AssetFile.from_payload(item) for item in _unwrap_results(data)]

    async def create_asset_file(
        self, asset: Asset, name: str, *, mime_type: str | None = None
    ) -> AssetFile:
        body: dict[str, Any] = {
            "Name": name,
            "ParentAssetId": asset.id,
            "IsPrimary": False,
            "IsEncrypted": False,
        }
        if mime_type:
            body["MimeType"] = mime_type
        data = await self._request("POST", "Files", json=body, operation="create_asset_file")
        return AssetFile.from_payload(_unwrap_entity(data))

    async def update_asset_file(self, asset_file: AssetFile) -> None:
        body = {
            "ContentFileSize": str(asset_file.content_file_size),
            "IsPrimary": asset_file.is_primary,
        }
        if asset_file.mime_type:
            body["MimeType"] = asset_file.mime_type
        await self._request(
            "MERGE",
            _entity_key("Files", asset_file.id),
            json=body,
            operation="update_asset_file",
        )

    # ------------------------------------------------------------------
    # Access policies and locators
    # ------------------------------------------------------------------
    async def create_access_policy(
        self,
        name: str,
        *,
        duration: timedelta,
        permissions: AccessPermissions,
    ) -> AccessPolicy:
        body = {
            "Name": name,
            "DurationInMinutes": duration.total_seconds() / 60,
            "Permissions": int(permissions),
        }
        data = await self._request(
            "POST", "AccessPolicies", json=body, operation="create_access_policy"
        )
        return AccessPolicy.from_payload(_unwrap_entity(data))

    async def delete_access_policy(self, policy_id: str) -> None:
        await self._request(
            "DELETE",
            _entity_key("AccessPolicies", policy_id),
            operation="delete_access_policy",
        )

    async def create_locator(
        self,
        asset: Asset,
        policy: AccessPolicy,
        *,
        locator_type: LocatorType = LocatorType.SAS,
    ) -> Locator:
        start_time = self.clock() - LOCATOR_START_SKEW
        body = {
            "AccessPolicyId": policy.id,
            "AssetId": asset.id,
            "StartTime": start_time.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "Type": int(locator_type),
        }
        data = await self._request("POST", "Locators", json=body, operation="create_locator")
        return Locator.from_payload(_unwrap_entity(data))

    async def delete_locator(self, locator_id: str) -> None:
        await self._request(
            "DELETE", _entity_key("Locators", locator_id), operation="delete_locator"
        )

    # ------------------------------------------------------------------
    # Processors and jobs
    # ------------------------------------------------------------------
    async def list_media_processors(self, name: str) -> list[MediaProcessor]:
        data = await self._request(
            "GET",
            "MediaProcessors",
            params={"$filter": f"Name eq {_odata_literal(name)}"},
            operation="list_media_processors",
        )
        return [MediaProcessor.from_payload(item) for item in _unwrap_results(data)]

    async def submit_job(self, name: str, tasks: Sequence[TaskSpec]) -> Job:
        """Create and submit a job in one request; media services queues it."""
        inputs: list[Asset] = []
        task_bodies: list[dict[str, Any]] = []
        for output_index, task in enumerate(tasks):
            input_index = next(
                (i for i, asset in enumerate(inputs) if asset.id == task.input_asset.id),
                None,
            )
            if input_index is None:
                inputs.append(task.input_asset)
                input_index = len(inputs) - 1
            task_bodies.append(
                {
                    "Name": task.name,
                    "Configuration": task.configuration,
                    "MediaProcessorId": task.processor_id,
                    "TaskBody": task.task_body(input_index, output_index),
                }
            )

        body = {
            "Name": name,
            "InputMediaAssets": [
                {"__metadata": {"uri": self.asset_uri(asset)}} for asset in inputs
            ],
            "Tasks": task_bodies,
        }
        data = await self._request("POST", "Jobs", json=body, operation="submit_job")
        job = Job.from_payload(_unwrap_entity(data), tasks=list(tasks))
        if not job.input_asset_ids:
            job.input_asset_ids = [asset.id for asset in inputs]
        return job

    async def list_jobs_for_input(self, asset_id: str, *, name: str | None = None) -> list[Job]:
        """Return jobs (optionally with display ``name``) that take ``asset_id`` as input."""
        params = {"$expand": "InputMediaAssets"}
        if name:
            params["$filter"] = f"Name eq {_odata_literal(name)}"
        data = await self._request("GET", "Jobs", params=params, operation="list_jobs")
        jobs = [Job.from_payload(item) for item in _unwrap_results(data)]
        return [job for job in jobs if asset_id in job.input_asset_ids]

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def _url(self, path: str) -> str:
        return f"{self.api_endpoint.rstrip('/')}/{path}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json: Mapping[str, Any] | None = None,
        params: Mapping[str, str] | None = None,
    ) -> Mapping[str, Any]:
        token = await self.token_provider.get_token()
        headers = dict(PROTOCOL_HEADERS)
        headers["Authorization"] = f"Bearer {token}"
        response = await self.http.request(
            method, self._url(path), headers=headers, json=json, params=params
        )
        if not response.is_success:
            code, message = _extract_odata_error(response)
            self.log.warning(
                "media.request.failed operation=%s status=%s code=%s",
                operation,
                response.status_code,
                code,
                extra={"operation": operation, "detail": message},
            )
            error_cls = AuthenticationError if response.status_code == 401 else ServiceRequestError
            raise error_cls(
                f"Media services {operation} failed (status={response.status_code}): {message}",
                status_code=response.status_code,
                error_code=code,
                operation=operation,
            )
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()


def _extract_odata_error(response: httpx.Response) -> tuple[str | None, str]:
    try:
        data = response.json()
    except ValueError:
        return None, response.text[:500]
    error = data.get("odata.error") or data.get("error")
    if not isinstance(error, dict):
        return None, str(data)[:500]
    message = error.get("message")
    if isinstance(message, dict):
        message = message.get("value")
    return error.get("code"), (message or "").strip()
