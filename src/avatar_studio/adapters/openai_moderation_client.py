"""OpenAI Moderation API client."""

from dataclasses import dataclass

from openai import AsyncOpenAI

from avatar_studio.services.moderation import ModerationClient, ModerationVerdict


@dataclass
class OpenAIModerationClient(ModerationClient):
    """Moderation client backed by the OpenAI SDK."""

    client: AsyncOpenAI

    @classmethod
    def create(cls, api_key: str) -> "OpenAIModerationClient":
        """Create an OpenAI moderation client."""
        return cls(client=AsyncOpenAI(api_key=api_key))

    async def moderate(self, *, model: str, text: str) -> ModerationVerdict:
        """Call the moderations endpoint for a single input."""
        response = await self.client.moderations.create(model=model, input=text)
        if not response.results:
            raise RuntimeError("OpenAI returned no moderation results")
        result = response.results[0]
        categories = [
            name for name, hit in result.categories.model_dump().items() if hit
        ]
        return ModerationVerdict(flagged=result.flagged, categories=categories)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.client.close()
