"""
Projects and their encrypted secrets.
"""

import json
import re
import time
from datetime import datetime, timezone
from typing import Any, Optional

from credproxy.encryption import SecretCipher
from credproxy.store import KeyValueStore


PROJECT_TYPES = ("web", "ios", "android", "expo", "other")

# Fields a caller may change through update_project.
UPDATABLE_FIELDS = {"name", "description", "type", "active"}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number == 0:
        return "0"
    result = ""
    while number:
        number, remainder = divmod(number, 36)
        result = digits[remainder] + result
    return result


def generate_project_id(name: str) -> str:
    """
    Build a project ID from a slug of the name and a timestamp suffix.

    "My App!" becomes something like "my-app-lq2k9x1c".
    """
    slug = re.sub(r"[^a-z0-9]", "-", name.lower())
    slug = re.sub(r"-+", "-", slug).strip("-")
    return f"{slug}-{to_base36(int(time.time() * 1000))}"


def validate_project_type(project_type: str) -> str:
    if project_type not in PROJECT_TYPES:
        raise ValueError(
            f"Invalid project type '{project_type}', "
            f"expected one of: {', '.join(PROJECT_TYPES)}"
        )
    return project_type


class ProjectManager:
    """
    Project records plus the per-project secrets registry.

    Secrets for a project live together under one key as a JSON map of
    name to {value, updatedAt}, where value is always ciphertext.
    """

    def __init__(self, store: KeyValueStore, cipher: SecretCipher):
        self.store = store
        self.cipher = cipher

    async def create_project(self, data: dict[str, Any]) -> dict[str, Any]:
        """
        Create a new active project.

        Raises ValueError if the name is missing or the type is unknown.
        """
        name = (data.get("name") or "").strip()
        if not name:
            raise ValueError("Project name is required")

        now = utc_now_iso()
        project = {
            "id": generate_project_id(name),
            "name": name,
            "description": data.get("description") or "",
            "type": validate_project_type(data.get("type") or "web"),
            "createdAt": now,
            "updatedAt": now,
            "active": True,
        }

        await self.store.put(f"project:{project['id']}", json.dumps(project))
        await self.store.put(f"secrets:{project['id']}", json.dumps({}))
        return project

    async def get_project(self, project_id: str) -> Optional[dict[str, Any]]:
        data = await self.store.get(f"project:{project_id}")
        return json.loads(data) if data else None

    async def list_projects(self) -> list[dict[str, Any]]:
        """
        Return all projects, most recently updated first.
        """
        projects = []
        for key in await self.store.list(prefix="project:"):
            data = await self.store.get(key)
            if data:
                projects.append(json.loads(data))

        return sorted(projects, key=lambda p: p["updatedAt"], reverse=True)

    async def update_project(
        self, project_id: str, updates: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        """
        Apply updates to a project and bump its updatedAt.

        Unknown fields are ignored. Returns None if the project is missing.
        """
        project = await self.get_project(project_id)
        if project is None:
            return None

        for field, value in updates.items():
            if field not in UPDATABLE_FIELDS:
                continue
            if field == "type":
                value = validate_project_type(value)
            elif field == "active":
                value = bool(value)
            project[field] = value

        project["updatedAt"] = utc_now_iso()
        await self.store.put(f"project:{project_id}", json.dumps(project))
        return project

    async def delete_project(self, project_id: str) -> bool:
        """
        Delete a project together with its secrets, API configs and OAuth
        token metadata.
        """
        await self.store.delete(f"project:{project_id}")
        await self.store.delete(f"secrets:{project_id}")

        for prefix in (
            f"api_config:{project_id}:",
            f"oauth_token_meta:{project_id}:",
        ):
            for key in await self.store.list(prefix=prefix):
                await self.store.delete(key)

        return True

    async def _load_sealed(self, project_id: str) -> dict[str, Any]:
        data = await self.store.get(f"secrets:{project_id}")
        return json.loads(data) if data else {}

    async def set_secret(self, project_id: str, name: str, value: str) -> bool:
        """
        Create or overwrite a secret, encrypting the value.

        Raises EncryptionError if the value cannot be sealed; nothing is
        written in that case.
        """
        sealed = await self._load_sealed(project_id)
        sealed[name] = {
            "value": self.cipher.encrypt(value),
            "updatedAt": utc_now_iso(),
        }

        await self.store.put(f"secrets:{project_id}", json.dumps(sealed))
        await self.update_project(project_id, {})
        return True

    async def get_secret(self, project_id: str, name: str) -> Optional[str]:
        sealed = await self._load_sealed(project_id)
        if name not in sealed:
            return None
        return self.cipher.decrypt(sealed[name]["value"])

    async def get_all_secrets(self, project_id: str) -> dict[str, dict]:
        """
        Return every secret for a project as name -> {value, updatedAt}
        with values decrypted.

        Raises DecryptionError if any stored value fails to open.
        """
        sealed = await self._load_sealed(project_id)
        return {
            name: {
                "value": self.cipher.decrypt(record["value"]),
                "updatedAt": record.get("updatedAt"),
            }
            for name, record in sealed.items()
        }

    async def list_secret_names(self, project_id: str) -> dict[str, dict]:
        """
        Return name -> {updatedAt} without decrypting anything.
        """
        sealed = await self._load_sealed(project_id)
        return {
            name: {"updatedAt": record.get("updatedAt")}
            for name, record in sealed.items()
        }

    async def delete_secret(self, project_id: str, name: str) -> bool:
        sealed = await self._load_sealed(project_id)
        if name not in sealed:
            return False

        del sealed[name]
        await self.store.put(f"secrets:{project_id}", json.dumps(sealed))
        return True
