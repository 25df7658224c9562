from typing import Dict, List, Optional, Tuple

from base_service import BaseService, RecordNotFoundError, new_id
from schemas import Protocol, validate_protocol


class ProtocolService(BaseService):
    """Protocols of the local user and their lifecycle."""

    def __init__(self, store, **kwargs) -> None:
        super().__init__(store, **kwargs)
        self._protocols: Tuple[Protocol, ...] = ()

    @property
    def protocols(self) -> Tuple[Protocol, ...]:
        return self._protocols

    async def load_protocols(self) -> None:
        self._loading = True
        self._error = None
        try:
            self._protocols = tuple(await self.store.protocols.to_list())
        except Exception as e:
            self._record_error("load protocols", e)
        finally:
            self._loading = False
            self._publish()

    async def create_protocol(
        self,
        name: str,
        description: Optional[str] = None,
        duration: str = "daily",
        category: str = "general",
        schedule_days: Optional[List[str]] = None,
    ) -> Protocol:
        self._error = None
        try:
            now = self.clock()
            data = {
                "id": new_id(),
                "name": name,
                "description": description,
                "duration": duration,
                "category": category,
                "status": "active",
                "created_at": now,
                "updated_at": now,
            }
            if schedule_days:
                data["schedule_days"] = schedule_days
            protocol = validate_protocol(data)
            await self.store.protocols.add(protocol)
            await self.load_protocols()
            return protocol
        except Exception as e:
            self._record_error("create protocol", e)
            raise

    async def update_protocol(self, protocol_id: str, updates: Dict[str, object]) -> Protocol:
        self._error = None
        try:
            existing = await self.store.protocols.get(protocol_id)
            if existing is None:
                raise RecordNotFoundError(f"Protocol {protocol_id} not found")
            updated = validate_protocol(
                {
                    **existing.model_dump(),
                    **updates,
                    "id": existing.id,
                    "updated_at": self.clock(),
                }
            )
            await self.store.protocols.update(protocol_id, updated.model_dump())
            await self.load_protocols()
            return updated
        except Exception as e:
            self._record_error("update protocol", e)
            raise

    async def delete_protocol(self, protocol_id: str) -> None:
        """Delete a protocol and everything recorded under it in one transaction."""
        self._error = None
        try:
            store = self.store
            async with store.transaction() as conn:
                routines = await store.routines.where(conn, protocol_id=protocol_id)
                routine_ids = [r.id for r in routines]
                exercises = await store.exercises.where_in("routine_id", routine_ids, conn)
                await store.tracking_logs.delete_where_in(
                    "exercise_id", [e.id for e in exercises], conn
                )
                await store.exercises.delete_where_in("routine_id", routine_ids, conn)
                await store.routines.delete_where_in("protocol_id", [protocol_id], conn)
                await store.daily_completions.delete_where_in(
                    "protocol_id", [protocol_id], conn
                )
                await store.protocols.delete(protocol_id, conn)
            await self.load_protocols()
        except Exception as e:
            self._record_error("delete protocol", e)
            raise

    async def get_protocol(self, protocol_id: str) -> Optional[Protocol]:
        try:
            return await self.store.protocols.get(protocol_id)
        except Exception as e:
            self._logger.error("Failed to get protocol %s: %s", protocol_id, e)
            return None

    async def archive_protocol(self, protocol_id: str) -> Protocol:
        return await self.update_protocol(protocol_id, {"status": "completed"})

    async def pause_protocol(self, protocol_id: str) -> Protocol:
        return await self.update_protocol(protocol_id, {"status": "paused"})

    async def resume_protocol(self, protocol_id: str) -> Protocol:
        return await self.update_protocol(protocol_id, {"status": "active"})
