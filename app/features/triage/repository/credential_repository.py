"""
Read-only view over the encrypted oauth_tokens table.

Writing and refreshing tokens belongs to the connect flows; the triage
pipeline only needs a decrypted bearer token or None.
"""

from app.db.helpers import fetch_all, fetch_one
from app.infrastructure.observability.logging import get_logger
from app.services.infrastructure.encryption_service import decrypt_token

logger = get_logger(__name__)

GOOGLE_PROVIDER = "google"
TODOIST_PROVIDER = "todoist"


class OAuthCredentialRepository:
    @staticmethod
    async def get_token(user_id: str, provider: str) -> str | None:
        row = await fetch_one(
            """
            SELECT access_token
            FROM oauth_tokens
            WHERE user_id = %s AND provider = %s
            """,
            (user_id, provider),
        )
        if not row or not row.get("access_token"):
            return None
        return decrypt_token(row["access_token"])

    @staticmethod
    async def list_connected_user_ids() -> list[str]:
        rows = await fetch_all(
            """
            SELECT DISTINCT user_id
            FROM oauth_tokens
            WHERE provider IN (%s, %s)
            ORDER BY user_id
            """,
            (GOOGLE_PROVIDER, TODOIST_PROVIDER),
        )
        return [row["user_id"] for row in rows]
