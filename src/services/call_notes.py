# services/call_notes.py

import asyncio
import logging
from typing import Callable, Optional

from models import CallNote, from_row
from services.database import error_message, get_async_client

logger = logging.getLogger(__name__)

CHANNEL_NAME = "call_notes_changes"


class CallNoteError(Exception):
    pass


class CallNoteStore:
    """
    Notes d'appel (rappels clients).

    Abonnement realtime : tout insert/update/delete sur call_notes,
    d'où qu'il vienne, déclenche un rechargement complet.
    Pas de fusion incrémentale.
    """

    def __init__(self, client, session):
        self.client = client
        self.session = session

        self.call_notes: list[CallNote] = []
        self.loading = False
        self.error: Optional[str] = None

        self._realtime = None
        self._channel = None

    # ─────────────────────────────────────────
    # LECTURE + REALTIME
    # ─────────────────────────────────────────

    def fetch(self) -> list[CallNote]:
        self.loading = True
        try:
            result = (
                self.client.table("call_notes")
                .select("*")
                .order("is_completed")
                .order("created_at", desc=True)
                .execute()
            )
            self.call_notes = [from_row(CallNote, row) for row in (result.data or [])]
            self.error = None
        except Exception as e:
            logger.error(f"Erreur chargement notes d'appel : {e}")
            self.error = error_message(e) or "Failed to fetch call notes"
        finally:
            self.loading = False

        return self.call_notes

    async def subscribe(self, realtime_client=None) -> None:
        """
        Le realtime passe par le client Supabase asynchrone : le client
        sync des requêtes ne sait pas ouvrir de canal.
        Créé à la demande si l'appelant n'en fournit pas.
        """
        if self._channel is not None:
            return

        if realtime_client is None:
            realtime_client = await get_async_client()

        channel = realtime_client.channel(CHANNEL_NAME)
        channel.on_postgres_changes(
            "*",
            callback=self._on_change,
            table="call_notes",
            schema="public",
        )
        await channel.subscribe()

        self._realtime = realtime_client
        self._channel = channel
        logger.info(f"Abonné au canal {CHANNEL_NAME}")

    async def close(self) -> None:
        if self._channel is None:
            return
        await self._realtime.remove_channel(self._channel)
        self._channel = None
        self._realtime = None

    def _on_change(self, payload):
        # Appelé dans la boucle realtime : le fetch (client sync) part dans un thread
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(None, self.fetch)

    # ─────────────────────────────────────────
    # ÉCRITURE
    # ─────────────────────────────────────────

    def create(self, data: dict) -> dict:
        created_by = self.session.user_id   # lève si non connecté

        try:
            result = (
                self.client.table("call_notes")
                .insert({**data, "created_by": created_by})
                .execute()
            )
        except Exception as e:
            raise CallNoteError(error_message(e) or "Failed to create call note") from e

        self.fetch()
        return result.data[0] if result.data else {}

    def update(self, note_id: str, data: dict) -> dict:
        try:
            result = (
                self.client.table("call_notes")
                .update(data)
                .eq("id", note_id)
                .execute()
            )
        except Exception as e:
            raise CallNoteError(error_message(e) or "Failed to update call note") from e

        self.fetch()
        return result.data[0] if result.data else {}

    def delete(self, note_id: str, confirm: Callable[[], bool]) -> bool:
        if not confirm():
            return False

        try:
            self.client.table("call_notes").delete().eq("id", note_id).execute()
        except Exception as e:
            raise CallNoteError(error_message(e) or "Failed to delete call note") from e

        self.fetch()
        return True

    def toggle_completed(self, note_id: str, is_completed: bool) -> dict:
        return self.update(note_id, {"is_completed": is_completed})

    @property
    def pending(self) -> list[CallNote]:
        return [note for note in self.call_notes if not note.is_completed]
