"""Room creation and teardown.

Validation happens before any side effect. The uploaded image is stored
first, then the room and its pieces are written in one transaction; if
that write fails the image is removed again.
"""

import logging
import time
import typing as t
from pathlib import PurePosixPath

from jigsync.auth import CurrentUser
from jigsync.exceptions import (
    InvalidPayload,
    NotAuthenticated,
    PersistenceFailure,
    StorageFailure,
)
from jigsync.models import Room
from jigsync.object_store import ObjectStore
from jigsync.puzzle import generate_config
from jigsync.store import SessionStateStore

log = logging.getLogger(__name__)

IMAGE_MEDIA_PREFIX = "image/"


def image_key(user_id: str, filename: str | None, content_type: str) -> str:
    """Key hint ``rooms/<user>/<epoch ms>.<ext>`` for an uploaded image."""
    suffix = PurePosixPath(filename or "").suffix.lstrip(".")
    if not suffix:
        suffix = content_type.removeprefix(IMAGE_MEDIA_PREFIX).split(";")[0] or "img"
    return f"rooms/{user_id}/{int(time.time() * 1000)}.{suffix.lower()}"


class RoomLifecycleManager:
    """Creates and deletes rooms on behalf of an authenticated caller.

    Parameters
    ----------
    store : SessionStateStore
        Authoritative room and piece table.
    object_store : ObjectStore
        Receives the uploaded image bytes.
    max_upload_bytes : int | None
        Upper bound of the image payload, None for no limit.
    """

    def __init__(
        self,
        store: SessionStateStore,
        object_store: ObjectStore,
        max_upload_bytes: int | None = None,
    ):
        self.store = store
        self.object_store = object_store
        self.max_upload_bytes = max_upload_bytes

    def validate(
        self, name: str | None, payload: bytes | None, content_type: str | None
    ) -> tuple[str, bytes, str]:
        """Check the upload and return the stripped name, payload and media type.

        Raises
        ------
        InvalidPayload
            If the name is blank, the payload is missing or empty, the
            payload is too large or its media type is not an image.
        """
        clean_name = (name or "").strip()
        if not clean_name or not payload:
            raise InvalidPayload("Missing file or room name")
        if not content_type or not content_type.lower().startswith(IMAGE_MEDIA_PREFIX):
            raise InvalidPayload("File must be an image")
        if self.max_upload_bytes is not None and len(payload) > self.max_upload_bytes:
            raise InvalidPayload(
                f"File exceeds the upload limit of {self.max_upload_bytes} bytes"
            )
        return clean_name, payload, content_type

    async def create_room(
        self,
        user: CurrentUser | None,
        name: str | None,
        payload: bytes | None,
        content_type: str | None,
        difficulty: t.Any = None,
        filename: str | None = None,
    ) -> Room:
        """Upload the image and seed a new room.

        Raises
        ------
        NotAuthenticated
            If there is no caller.
        InvalidPayload
            If validation fails; nothing was stored.
        StorageFailure
            If the object store rejected the image; no rows were written.
        PersistenceFailure
            If the room could not be written; the image was removed.
        """
        if user is None:
            raise NotAuthenticated("Authentication required to create a room")
        clean_name, payload, content_type = self.validate(name, payload, content_type)

        key_hint = image_key(user.id, filename, content_type)
        try:
            image_url = await self.object_store.put(payload, content_type, key_hint)
        except Exception as e:
            log.error("Image upload for room '%s' failed: %s", clean_name, e)
            raise StorageFailure(f"Could not store image: {e}") from e
        key = self.object_store.key_for(image_url)

        config = generate_config(difficulty)
        try:
            return await self.store.create_room(
                name=clean_name,
                image_url=image_url,
                config=config,
                owner=user.id,
                image_key=key,
            )
        except PersistenceFailure:
            if key is not None:
                await self._release_image(key)
            raise

    async def delete_room(self, user: CurrentUser | None, room_id: str) -> Room:
        """Delete a room owned by ``user`` and release its image."""
        if user is None:
            raise NotAuthenticated("Authentication required to delete a room")
        room = await self.store.delete_room(room_id, user.id)
        if room.image_key is not None:
            await self._release_image(room.image_key)
        return room

    async def _release_image(self, key: str) -> None:
        try:
            await self.object_store.delete(key)
        except Exception as e:
            log.warning("Could not delete stored image %s: %s", key, e)
