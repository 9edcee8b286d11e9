"""Supabase repository for trained models."""

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from avatar_studio.domain.models import TrainedModelRecord
from avatar_studio.services.models import TrainedModelRepository

_TABLE = "user_models"


@dataclass
class SupabaseModelRepository(TrainedModelRepository):
    """Supabase implementation over the ``user_models`` table."""

    client: Client

    async def upsert(self, record: TrainedModelRecord) -> None:
        """Insert or update the model row for a chat."""
        await asyncio.to_thread(self._upsert, record)

    async def find_by_session_id(self, session_id: int) -> TrainedModelRecord | None:
        """Return the stored model for a chat."""
        return await asyncio.to_thread(self._find, session_id)

    async def delete_by_session_id(self, session_id: int) -> None:
        """Delete the stored model for a chat."""
        await asyncio.to_thread(self._delete, session_id)

    def _upsert(self, record: TrainedModelRecord) -> None:
        self.client.table(_TABLE).upsert(
            {
                "chat_id": record.session_id,
                "model_version": record.model_version,
                "trigger_word": record.trigger_word,
                "training_id": record.training_id,
                "updated_at": datetime.now(tz=UTC).isoformat(),
            },
            on_conflict="chat_id",
        ).execute()

    def _find(self, session_id: int) -> TrainedModelRecord | None:
        response = (
            self.client.table(_TABLE)
            .select("chat_id, model_version, trigger_word, training_id, updated_at")
            .eq("chat_id", session_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        updated_at = row.get("updated_at")
        return TrainedModelRecord(
            session_id=int(row["chat_id"]),
            model_version=str(row["model_version"]),
            trigger_word=str(row["trigger_word"]),
            training_id=row.get("training_id"),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )

    def _delete(self, session_id: int) -> None:
        self.client.table(_TABLE).delete().eq("chat_id", session_id).execute()
