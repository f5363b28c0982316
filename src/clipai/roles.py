import json
import logging
import threading
from dataclasses import replace
from importlib import resources
from pathlib import Path

from clipai.config import ROLES_PATH
from clipai.errors import NotFoundError, PermissionDeniedError, StorageError, ValidationError
from clipai.models import Role
from clipai.utils import now_ms, read_json, write_json

logger = logging.getLogger(__name__)


def load_preset_roles() -> dict[str, Role]:
    """Factory preset roles shipped with the package, keyed by id."""
    raw = resources.files("clipai").joinpath("presets", "roles.json").read_text(encoding="utf-8")
    presets = {}
    for item in json.loads(raw)["roles"]:
        role = Role.from_dict({**item, "isPreset": True})
        presets[role.id] = role
    return presets


class RoleStore:
    """AI roles (system prompts) persisted as a JSON array.

    Preset roles are seeded on first run. They can be edited but not deleted,
    cannot stop being presets, and can be reset to their factory text.
    """

    def __init__(self, path: str | Path | None = None, presets: dict[str, Role] | None = None):
        self._path = Path(path) if path else ROLES_PATH
        self._presets = presets if presets is not None else load_preset_roles()
        self._lock = threading.Lock()
        self._roles: dict[str, Role] = {}
        self._load()

    def _load(self) -> None:
        try:
            data = read_json(self._path)
        except StorageError:
            logger.warning("Could not load roles, using presets in memory", exc_info=True)
            self._seed(persist=False)
            return

        if not data:
            self._seed(persist=True)
            return

        for raw in data:
            try:
                role = Role.from_dict(raw)
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed role: %r", raw)
                continue
            self._roles[role.id] = role

    def _seed(self, persist: bool) -> None:
        now = now_ms()
        for preset in self._presets.values():
            self._roles[preset.id] = replace(preset, created_at=now, updated_at=now)
        if persist:
            try:
                self._save()
            except StorageError:
                logger.warning("Could not write seeded roles", exc_info=True)

    def _save(self) -> None:
        write_json(self._path, [r.to_dict() for r in self._roles.values()])

    def get_all(self) -> list[Role]:
        with self._lock:
            return sorted(self._roles.values(), key=lambda r: (not r.is_preset, r.created_at))

    def get(self, role_id: str) -> Role:
        with self._lock:
            role = self._roles.get(role_id)
        if role is None:
            raise NotFoundError(f"Role not found: {role_id}")
        return role

    def add(self, role: Role) -> Role:
        with self._lock:
            if role.id in self._roles:
                raise ValidationError(f"Role id already exists: {role.id}")
            role = replace(role, is_preset=False)
            self._roles[role.id] = role
            self._save()
            return role

    def update(self, role: Role) -> Role:
        with self._lock:
            existing = self._roles.get(role.id)
            if existing is None:
                raise NotFoundError(f"Role not found: {role.id}")
            if existing.is_preset and not role.is_preset:
                raise PermissionDeniedError("A preset role cannot be turned into a custom role")
            if not existing.is_preset and role.is_preset:
                raise PermissionDeniedError("A custom role cannot be turned into a preset")
            updated = replace(role, created_at=existing.created_at, updated_at=now_ms())
            self._roles[role.id] = updated
            self._save()
            return updated

    def delete(self, role_id: str) -> None:
        with self._lock:
            existing = self._roles.get(role_id)
            if existing is None:
                raise NotFoundError(f"Role not found: {role_id}")
            if existing.is_preset:
                raise PermissionDeniedError("Preset roles cannot be deleted")
            del self._roles[role_id]
            self._save()

    def reset(self, role_id: str) -> Role:
        with self._lock:
            existing = self._roles.get(role_id)
            if existing is None:
                raise NotFoundError(f"Role not found: {role_id}")
            if not existing.is_preset:
                raise PermissionDeniedError("Only preset roles can be reset")
            factory = self._presets.get(role_id)
            if factory is None:
                raise NotFoundError(f"Unknown preset role: {role_id}")
            restored = replace(factory, created_at=existing.created_at, updated_at=now_ms())
            self._roles[role_id] = restored
            self._save()
            return restored
