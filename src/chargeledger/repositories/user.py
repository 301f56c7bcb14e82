"""Repository for user operations."""

from ..models import User
from .base import BaseRepository


class UserRepository(BaseRepository):
    """Handles database operations for users and their badges."""

    async def save(self, user: User) -> User:
        """Insert or update a user and replace its badges."""
        await self._execute(
            """
            INSERT INTO app_user (
                tenant_id, id, name, first_name, email, role, issuer, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(tenant_id, id) DO UPDATE SET
                name = excluded.name,
                first_name = excluded.first_name,
                email = excluded.email,
                role = excluded.role,
                issuer = excluded.issuer,
                updated_at = CURRENT_TIMESTAMP
            """,
            (
                user.tenant_id,
                user.id,
                user.name,
                user.first_name,
                user.email,
                user.role,
                1 if user.issuer else 0,
            ),
        )
        await self._execute(
            "DELETE FROM user_tag WHERE tenant_id = ? AND user_id = ?",
            (user.tenant_id, user.id),
        )
        await self.conn.executemany(
            "INSERT INTO user_tag (tenant_id, id, user_id) VALUES (?, ?, ?)",
            [(user.tenant_id, tag_id, user.id) for tag_id in user.tag_ids],
        )
        await self.conn.commit()
        return user

    async def get_by_id(
        self, tenant_id: str, user_id: str, with_tags: bool = False
    ) -> User | None:
        """Get a user by ID, optionally loading its badges."""
        row = await self._fetchone(
            "SELECT * FROM app_user WHERE tenant_id = ? AND id = ?", (tenant_id, user_id)
        )
        if not row:
            return None
        user = self._row_to_model(row)
        if with_tags:
            tag_rows = await self._fetchall(
                "SELECT id FROM user_tag WHERE tenant_id = ? AND user_id = ? ORDER BY id",
                (tenant_id, user_id),
            )
            user.tag_ids = [r["id"] for r in tag_rows]
        return user

    async def get_by_ids(self, tenant_id: str, user_ids: list[str]) -> dict[str, User]:
        """Get users keyed by ID; unknown IDs are left out."""
        ids = sorted({user_id for user_id in user_ids if user_id})
        if not ids:
            return {}
        rows = await self._fetchall(
            f"SELECT * FROM app_user WHERE tenant_id = ? AND id IN ({self._placeholders(ids)})",
            (tenant_id, *ids),
        )
        return {row["id"]: self._row_to_model(row) for row in rows}

    def _row_to_model(self, row) -> User:
        """Convert database row to User model."""
        return User(
            id=row["id"],
            tenant_id=row["tenant_id"],
            name=row["name"],
            first_name=row["first_name"],
            email=row["email"],
            role=row["role"],
            issuer=bool(row["issuer"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
