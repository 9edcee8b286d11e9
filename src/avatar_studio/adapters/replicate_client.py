"""Replicate HTTP API client."""

from dataclasses import dataclass
from typing import Protocol

import httpx

_BASE_URL = "https://api.replicate.com/v1"


class ReplicateClient(Protocol):
    """Interface for Replicate trainings and predictions."""

    async def create_training(
        self, dataset_url: str, trigger_word: str, training_steps: int
    ) -> dict[str, object]:
        """Start a fine-tune training and return the raw training resource."""

    async def get_training(self, training_id: str) -> dict[str, object]:
        """Return the raw training resource."""

    async def create_prediction(
        self,
        version: str,
        prompt: str,
        negative_prompt: str | None,
        num_outputs: int,
    ) -> dict[str, object]:
        """Start a prediction and return the raw prediction resource."""

    async def get_prediction(self, prediction_id: str) -> dict[str, object]:
        """Return the raw prediction resource."""

    async def delete_model_version(self, version_id: str) -> None:
        """Delete a version of the destination model."""


@dataclass
class HttpxReplicateClient(ReplicateClient):
    """HTTPX-backed Replicate client."""

    api_token: str
    training_model: str
    training_version_id: str
    destination_model: str
    http_client: httpx.AsyncClient
    base_url: str = _BASE_URL
    guidance_scale: float = 3.5

    @classmethod
    def create(
        cls,
        api_token: str,
        training_version: str,
        model_owner: str,
        destination_slug: str,
    ) -> "HttpxReplicateClient":
        """Create a client from an ``owner/model:version`` training reference."""
        model, separator, version_id = training_version.partition(":")
        if not separator or model.count("/") != 1 or not version_id:
            raise ValueError(
                "Replicate training version must look like owner/model:version"
            )
        return cls(
            api_token=api_token,
            training_model=model,
            training_version_id=version_id,
            destination_model=f"{model_owner.lower()}/{destination_slug.lower()}",
            http_client=httpx.AsyncClient(),
        )

    async def create_training(
        self, dataset_url: str, trigger_word: str, training_steps: int
    ) -> dict[str, object]:
        """Start a training that publishes into the destination model."""
        path = (
            f"/models/{self.training_model}/versions/"
            f"{self.training_version_id}/trainings"
        )
        return await self._request(
            "POST",
            path,
            json={
                "destination": self.destination_model,
                "input": {
                    "input_images": dataset_url,
                    "trigger_word": trigger_word,
                    "training_steps": training_steps,
                },
            },
        )

    async def get_training(self, training_id: str) -> dict[str, object]:
        """Fetch a training by id."""
        return await self._request("GET", f"/trainings/{training_id}")

    async def create_prediction(
        self,
        version: str,
        prompt: str,
        negative_prompt: str | None,
        num_outputs: int,
    ) -> dict[str, object]:
        """Start an image prediction against a model version."""
        return await self._request(
            "POST",
            "/predictions",
            json={
                "version": _version_id(version),
                "input": {
                    "prompt": prompt,
                    "negative_prompt": negative_prompt,
                    "num_outputs": num_outputs,
                    "guidance_scale": self.guidance_scale,
                },
            },
        )

    async def get_prediction(self, prediction_id: str) -> dict[str, object]:
        """Fetch a prediction by id."""
        return await self._request("GET", f"/predictions/{prediction_id}")

    async def delete_model_version(self, version_id: str) -> None:
        """Delete a destination model version."""
        path = f"/models/{self.destination_model}/versions/{_version_id(version_id)}"
        await self._request("DELETE", path)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _request(
        self, method: str, path: str, json: dict[str, object] | None = None
    ) -> dict[str, object]:
        response = await self.http_client.request(
            method,
            f"{self.base_url}{path}",
            json=json,
            headers={
                "Authorization": f"Bearer {self.api_token}",
                "Accept": "application/json",
            },
            timeout=30,
        )
        response.raise_for_status()
        if method == "DELETE" or not response.content:
            return {}
        return response.json()


def _version_id(version: str) -> str:
    """Strip an ``owner/model:`` prefix from a version reference."""
    return version.rsplit(":", maxsplit=1)[-1]
